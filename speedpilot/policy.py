"""Enforcement data model.

PlaybackPolicy is written only by Coordinator. TrackedVideo owns the
listener handles registered on its element so they can all be released
when a newer video supersedes it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List


@dataclass
class PlaybackPolicy:
    """Current enforcement policy.
    
    INVARIANT: enforcement is attempted only while can_enforce is True.
    """
    target_rate: float = 2.0
    enforcement_enabled: bool = True
    resume_enabled: bool = True
    
    @property
    def can_enforce(self) -> bool:
        return self.enforcement_enabled and self.target_rate is not None and self.target_rate > 0


@dataclass
class TrackedVideo:
    """The single primary video currently tracked.
    
    INVARIANT: seen is set at most once per source_identity. A new
    identity gets a new TrackedVideo.
    """
    handle: Any  # MediaHandle
    source_identity: str
    seen: bool = False
    guarded: bool = False  # ResumeGuard wired for this identity
    listeners: List[Any] = field(default_factory=list, repr=False)
    
    def owns(self, handle: Any, source_identity: str) -> bool:
        """True if this record still describes the given element and source."""
        return self.handle == handle and self.source_identity == source_identity
    
    def release(self) -> int:
        """Deregister every listener handle and reset the seen marking.
        
        Returns the number of handles released. A detached element may
        refuse removal; that is logged and ignored since the element is
        no longer observed anyway.
        """
        released = 0
        while self.listeners:
            listener = self.listeners.pop()
            try:
                self.handle.remove_listener(listener)
                released += 1
            except Exception as e:
                logging.debug(f"Listener removal failed for {self.source_identity!r}: {e}")
        self.seen = False
        self.guarded = False
        return released


@dataclass
class NavigationState:
    """Last location observed by NavigationWatcher."""
    last_known_location: str = ""
