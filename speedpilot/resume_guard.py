"""ResumeGuard - re-enforces after the player resets the rate itself.

Two classes of external reset exist:
1. instantaneous (inserted ads, explicit resets) -> ratechange trigger
2. resume-adjacent (buffer stalls, end of ad)     -> playing trigger + delay

The delay on the resume path keeps our write from being overwritten by
the player's own resume logic. A second, later re-check covers slow
renegotiation.
"""

import logging
from typing import Callable

from ._host.base import PLAYING, RATE_CHANGE
from .policy import PlaybackPolicy, TrackedVideo
from .scheduler import TimerQueue


class ResumeGuard:
    """Wires the rate-drift and resume triggers on a tracked video.
    
    INVARIANT: at most one pair of triggers per TrackedVideo. Handles are
    stored on the TrackedVideo and released with it.
    """
    
    def __init__(
        self,
        enforce: Callable[[], bool],
        timers: TimerQueue,
        resume_delay: float = 0.2,
        resume_fallback_delay: float = 1.0,
    ):
        """
        Args:
            enforce: Re-applies the policy to the *current* video. Called
                     from timers, so it must re-fetch rather than capture.
            timers: Queue used for the delayed resume re-checks
        """
        self._enforce = enforce
        self._timers = timers
        self.resume_delay = resume_delay
        self.resume_fallback_delay = resume_fallback_delay
    
    def attach(self, tracked: TrackedVideo, policy: PlaybackPolicy) -> bool:
        """Register both triggers unless already wired for this identity.
        
        Returns:
            True if listeners were registered by this call
        """
        if tracked.guarded or not policy.resume_enabled:
            return False
        
        video = tracked.handle
        
        def on_rate_change() -> None:
            if not policy.resume_enabled:
                return
            try:
                observed = video.playback_rate
            except Exception as e:
                logging.debug(f"Rate probe failed on ratechange: {e}")
                return
            # 0 is a pause-adjacent state, not drift
            if observed != policy.target_rate and observed != 0:
                logging.debug(f"Rate drift {observed} != {policy.target_rate}, re-applying")
                self._enforce()
        
        def on_playing() -> None:
            if not policy.resume_enabled:
                return
            self._timers.call_later(self.resume_delay, self._enforce)
            if self.resume_fallback_delay > self.resume_delay:
                self._timers.call_later(self.resume_fallback_delay, self._enforce)
        
        added = []
        try:
            added.append(video.add_listener(RATE_CHANGE, on_rate_change))
            added.append(video.add_listener(PLAYING, on_playing))
        except Exception as e:
            logging.warning(f"Could not attach resume triggers to {tracked.source_identity!r}: {e}")
            # Half-wired pairs would double-register on the next attempt
            for listener in added:
                try:
                    video.remove_listener(listener)
                except Exception:
                    pass
            return False

        tracked.listeners.extend(added)
        tracked.guarded = True
        logging.debug(f"Resume triggers attached to {tracked.source_identity!r}")
        return True
