"""NavigationWatcher - detects SPA navigation without a page load.

The hosting app swaps views through the history API, so there is no load
event to hook. Instead every mutation tick compares the ambient location
with the last one seen. Navigation and video replacement are not atomic
here, so the re-check after a change is delayed, with a later fallback.
"""

import logging
from typing import Any, Callable, Optional

from ._host.base import AbstractHostDocument
from .policy import NavigationState
from .scheduler import TimerQueue
from .video_tracker import VideoTracker


class NavigationWatcher:
    """Invalidates the tracked video when the location changes."""
    
    def __init__(
        self,
        host: AbstractHostDocument,
        tracker: VideoTracker,
        timers: TimerQueue,
        enforce: Callable[[], bool],
        navigation_delay: float = 0.5,
        navigation_fallback_delay: float = 1.5,
        on_navigate: Optional[Callable[[str], None]] = None,
    ):
        self._host = host
        self._tracker = tracker
        self._timers = timers
        self._enforce = enforce
        self.navigation_delay = navigation_delay
        self.navigation_fallback_delay = navigation_fallback_delay
        self._on_navigate = on_navigate
        self.state = NavigationState()
        self._subscription: Any = None
    
    def start(self) -> None:
        if self._subscription is not None:
            return
        self.state.last_known_location = self._host.location()
        self._subscription = self._host.observe_mutations(self.on_mutation)
        logging.info(f"NavigationWatcher started at {self.state.last_known_location}")
    
    def stop(self) -> None:
        if self._subscription is not None:
            self._host.disconnect(self._subscription)
            self._subscription = None
    
    def on_mutation(self) -> bool:
        """Check for a location change. Returns True if navigation happened."""
        try:
            location = self._host.location()
        except Exception as e:
            logging.warning(f"Location probe failed: {e}")
            return False
        
        if location == self.state.last_known_location:
            return False
        
        logging.info(f"SPA navigation: {self.state.last_known_location} -> {location}")
        self.state.last_known_location = location
        self._tracker.invalidate()
        
        if self._on_navigate is not None:
            try:
                self._on_navigate(location)
            except Exception as e:
                logging.error(f"Navigation callback failed: {e}")
        
        self._timers.call_later(self.navigation_delay, self._recheck)
        if self.navigation_fallback_delay > self.navigation_delay:
            self._timers.call_later(self.navigation_fallback_delay, self._recheck)
        return True
    
    def _recheck(self) -> None:
        # Re-fetch: the element seen at navigation time may be gone by now
        self._tracker.on_mutation()
        self._enforce()
