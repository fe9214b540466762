"""Enforcement Exception Hierarchy

Defines exceptions for enforcement-level failures with clear classification:
- TransientApplyFailure: the host refused a rate write (retry on next trigger)
- SettingsUnavailableError: settings collaborator unreachable (use defaults)

None of these ever reach the end user. Every failure is logged and the
next natural trigger (mutation, media event, settings change) heals it.
"""


class TransientApplyFailure(RuntimeError):
    """Raised by a host when a playback-rate write is rejected.
    
    This is a TRANSIENT failure. RateEnforcer catches it, logs it and
    waits for the next trigger. It is never retried in a loop.
    
    THROW when:
    - Rate value rejected by the media element (NotSupportedError)
    - Page evaluation failed mid-write
    """
    
    def __init__(self, message: str, rate: float = None):
        super().__init__(message)
        self.rate = rate
    
    def __str__(self):
        if self.rate is None:
            return super().__str__()
        return f"[rate={self.rate}] {super().__str__()}"


class HostDetachedError(TransientApplyFailure):
    """The media element is no longer attached to the document."""


class SettingsUnavailableError(RuntimeError):
    """Raised when the settings collaborator cannot be read.
    
    Coordinator catches this at startup and proceeds with DEFAULTS
    rather than blocking initialization.
    """
    
    def __init__(self, source: str, message: str):
        super().__init__(message)
        self.source = source
    
    def __str__(self):
        return f"[{self.source}] {super().__str__()}"
