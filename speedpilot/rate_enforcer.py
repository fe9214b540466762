"""RateEnforcer - applies a target rate to one media element.

Stateless. Writes only when the element's rate differs from the target,
so it never retriggers ratechange listeners for nothing.
"""

import logging
from typing import Optional

from ._host.base import MediaHandle


class RateEnforcer:
    """Apply a playback rate exactly when divergent.
    
    INVARIANT: no write when video is None, target_rate <= 0, or the rate
    already matches. Failures are logged and never retried here.
    """
    
    def apply(self, video: Optional[MediaHandle], target_rate: Optional[float]) -> bool:
        """Set video's rate to target_rate if it differs.
        
        Returns:
            True if a write happened
        """
        if video is None or target_rate is None or target_rate <= 0:
            return False
        
        try:
            current = video.playback_rate
            if current == target_rate:
                return False
            video.playback_rate = target_rate
        except Exception as e:
            # Transient: next navigation/resume/settings trigger retries
            logging.error(f"Error setting playback rate to {target_rate}: {e}")
            return False
        
        logging.debug(f"Playback rate {current} -> {target_rate}")
        return True
