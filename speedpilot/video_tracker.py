"""VideoTracker - follows the primary video across DOM churn.

States:
    NO_VIDEO              nothing matches either selector
    VIDEO_PRESENT_UNSEEN  element found, enforcement not wired yet
    VIDEO_PRESENT_SEEN    enforcement, resume triggers and ready hooks wired

Every transition is driven by host mutation notifications (childList +
subtree). There is no polling. Handlers are idempotent and cheap because
mutations arrive in bursts during heavy churn.
"""

import logging
from enum import Enum
from typing import Any, Callable, Optional

from ._host.base import AbstractHostDocument, MediaHandle, READY_EVENTS
from .policy import PlaybackPolicy, TrackedVideo
from .resume_guard import ResumeGuard


class TrackerState(Enum):
    NO_VIDEO = "no_video"
    VIDEO_PRESENT_UNSEEN = "video_present_unseen"
    VIDEO_PRESENT_SEEN = "video_present_seen"


class VideoTracker:
    """Tracks the single primary video and wires enforcement onto it.
    
    INVARIANT: at most one TrackedVideo at a time. A superseded
    TrackedVideo has all of its listeners released before replacement.
    """
    
    def __init__(
        self,
        host: AbstractHostDocument,
        guard: ResumeGuard,
        policy: PlaybackPolicy,
        enforce: Callable[[], bool],
        primary_selector: str = "video.html5-main-video",
        fallback_selector: str = "video",
    ):
        self._host = host
        self._guard = guard
        self._policy = policy
        self._enforce = enforce
        self.primary_selector = primary_selector
        self.fallback_selector = fallback_selector
        self._tracked: Optional[TrackedVideo] = None
        self._subscription: Any = None
    
    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    
    def start(self) -> None:
        """Subscribe to mutations and pick up a video already on the page."""
        if self._subscription is not None:
            return
        self._subscription = self._host.observe_mutations(self.on_mutation)
        self.on_mutation()
        logging.info(f"VideoTracker started ({self.state.value})")
    
    def stop(self) -> None:
        """Unsubscribe and release the tracked video's listeners."""
        if self._subscription is not None:
            self._host.disconnect(self._subscription)
            self._subscription = None
        self._drop()
        logging.info("VideoTracker stopped")
    
    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    
    @property
    def tracked(self) -> Optional[TrackedVideo]:
        return self._tracked
    
    @property
    def state(self) -> TrackerState:
        if self._tracked is None:
            return TrackerState.NO_VIDEO
        if self._tracked.seen:
            return TrackerState.VIDEO_PRESENT_SEEN
        return TrackerState.VIDEO_PRESENT_UNSEEN
    
    def find_video(self) -> Optional[MediaHandle]:
        """Primary player first, else the first generic media element."""
        try:
            return (
                self._host.query_selector(self.primary_selector)
                or self._host.query_selector(self.fallback_selector)
            )
        except Exception as e:
            logging.warning(f"Video lookup failed: {e}")
            return None
    
    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    
    def on_mutation(self) -> TrackerState:
        """Re-evaluate the tracked video after a DOM change."""
        video = self.find_video()
        if video is None:
            if self._tracked is not None:
                logging.debug(f"Video {self._tracked.source_identity!r} left the document")
                self._drop()
            return self.state
        
        try:
            identity = video.source_identity
        except Exception as e:
            logging.warning(f"Could not read video source: {e}")
            return self.state
        
        if self._tracked is None or not self._tracked.owns(video, identity):
            if self._tracked is not None:
                logging.info(f"Video source changed: {self._tracked.source_identity!r} -> {identity!r}")
            self._drop()
            self._tracked = TrackedVideo(handle=video, source_identity=identity)
        
        if not self._tracked.seen:
            self._discover(self._tracked)
        return self.state
    
    def invalidate(self) -> None:
        """Clear the seen marking so the next mutation re-discovers the video."""
        if self._tracked is not None:
            self._tracked.release()
    
    def attach_guard(self) -> bool:
        """Wire resume triggers on the current video (smart-resume turned on)."""
        if self._tracked is None or not self._tracked.seen:
            return False
        return self._guard.attach(self._tracked, self._policy)
    
    def _discover(self, tracked: TrackedVideo) -> None:
        tracked.seen = True
        logging.info(f"Tracking video {tracked.source_identity!r}")
        
        self._enforce()
        self._guard.attach(tracked, self._policy)
        
        # Late-binding capability negotiation: re-apply once each
        for event in READY_EVENTS:
            try:
                tracked.listeners.append(
                    tracked.handle.add_listener(event, self._on_ready, once=True)
                )
            except Exception as e:
                logging.warning(f"Could not listen for {event} on {tracked.source_identity!r}: {e}")
    
    def _on_ready(self) -> None:
        self._enforce()
    
    def _drop(self) -> None:
        if self._tracked is not None:
            self._tracked.release()
            self._tracked = None
