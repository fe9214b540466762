"""Host document backends (private)."""
