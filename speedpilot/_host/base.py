"""Abstract Host Document Interface

Private abstraction layer between the enforcement core and the page.
NOT user-configurable directly.

RESPONSIBILITY:
- Define how the core queries media elements and the current location
- Define mutation and media-event subscriptions
- Allow backend swapping (Playwright, in-memory fakes) without core changes

DOES NOT:
- Decide when or what to enforce (Coordinator's job)
- Track which video is current (VideoTracker's job)
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


MutationCallback = Callable[[], None]
MediaCallback = Callable[[], None]

# Media events the core listens to
RATE_CHANGE = "ratechange"
PLAYING = "playing"
READY_EVENTS = ("loadedmetadata", "canplay", "loadeddata")


class MediaHandle(ABC):
    """Opaque reference to one media element in the host document.
    
    Two handles for the same element MUST compare equal.
    """
    
    @property
    @abstractmethod
    def playback_rate(self) -> float:
        """Current playback rate of the element."""
        raise NotImplementedError
    
    @playback_rate.setter
    @abstractmethod
    def playback_rate(self, value: float) -> None:
        """Write the playback rate.
        
        Raises:
            TransientApplyFailure: the host rejected the value
            HostDetachedError: the element left the document
        """
        raise NotImplementedError
    
    @property
    @abstractmethod
    def source_identity(self) -> str:
        """Identity of the loaded media resource (currentSrc, else src)."""
        raise NotImplementedError
    
    @abstractmethod
    def is_connected(self) -> bool:
        """True while the element is attached to the document."""
        raise NotImplementedError
    
    @abstractmethod
    def add_listener(self, event: str, callback: MediaCallback, once: bool = False) -> Any:
        """Register callback for a media event. Returns a listener handle."""
        raise NotImplementedError
    
    @abstractmethod
    def remove_listener(self, listener: Any) -> None:
        """Deregister a handle returned by add_listener.
        
        Removing a handle that already fired (once=True) or was already
        removed is a no-op.
        """
        raise NotImplementedError


class AbstractHostDocument(ABC):
    """Interface for the document hosting the player.
    
    Implementations:
    - PlaywrightHost (playwright.py)
    - FakeDocument (tests)
    
    All callbacks are delivered on the thread that drives the host.
    """
    
    @abstractmethod
    def query_selector(self, selector: str) -> Optional[MediaHandle]:
        """First media element matching selector, or None."""
        raise NotImplementedError
    
    @abstractmethod
    def location(self) -> str:
        """Ambient current location (URL) of the document."""
        raise NotImplementedError
    
    @abstractmethod
    def observe_mutations(self, callback: MutationCallback) -> Any:
        """Notify callback on childList/subtree changes. Returns a subscription."""
        raise NotImplementedError
    
    @abstractmethod
    def disconnect(self, subscription: Any) -> None:
        """Stop a subscription returned by observe_mutations."""
        raise NotImplementedError
    
    def channel_id(self) -> Optional[str]:
        """Identifier of the channel owning the current video, if known."""
        return None
