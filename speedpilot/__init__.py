"""SpeedPilot - keeps a chosen playback rate on an SPA video player."""

__version__ = "0.3.0"
