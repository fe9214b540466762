"""Shared fakes for the enforcement core.

FakeDocument/FakeVideo implement the host interface in memory. Media
events dispatch synchronously, mutations only when a test calls
mutate(), and time only moves through FakeClock.advance().
"""

import itertools

import pytest

from speedpilot._host.base import AbstractHostDocument, MediaHandle
from speedpilot.coordinator import Coordinator
from speedpilot.enforcer_config import EnforcerConfig, EnforcerSettings
from speedpilot.exceptions import HostDetachedError, TransientApplyFailure
from speedpilot.scheduler import TimerQueue
from speedpilot.settings_store import SettingsStore


class FakeVideo(MediaHandle):
    """In-memory media element."""
    
    _ids = itertools.count(1)
    
    def __init__(self, src="https://cdn.example/v1.mp4", rate=1.0, primary=True):
        self.src = src
        self.primary = primary
        self.connected = True
        self.reject = False
        self.writes = 0
        self._rate = rate
        self._listeners = {}  # id -> (event, callback, once)
    
    @property
    def playback_rate(self):
        return self._rate
    
    @playback_rate.setter
    def playback_rate(self, value):
        if not self.connected:
            raise HostDetachedError("detached")
        if self.reject:
            raise TransientApplyFailure("NotSupportedError", rate=value)
        self._rate = value
        self.writes += 1
        self.fire("ratechange")
    
    @property
    def source_identity(self):
        return self.src
    
    def is_connected(self):
        return self.connected
    
    def add_listener(self, event, callback, once=False):
        if not self.connected:
            raise HostDetachedError("detached")
        listener_id = next(self._ids)
        self._listeners[listener_id] = (event, callback, once)
        return listener_id
    
    def remove_listener(self, listener):
        self._listeners.pop(listener, None)
    
    def fire(self, event):
        for listener_id, (name, callback, once) in list(self._listeners.items()):
            if name != event:
                continue
            if once:
                self._listeners.pop(listener_id, None)
            callback()
    
    def player_sets_rate(self, rate, notify=True):
        """Rate change made by the player itself (ads, resets)."""
        self._rate = rate
        if notify:
            self.fire("ratechange")
    
    def listener_count(self, event=None):
        return sum(1 for name, _, _ in self._listeners.values() if event is None or name == event)


class FakeDocument(AbstractHostDocument):
    """In-memory host document with a list of media elements."""
    
    def __init__(self, url="https://www.example.com/"):
        self.url = url
        self.videos = []
        self.channel = None
        self._subscribers = {}
        self._ids = itertools.count(1)
    
    def query_selector(self, selector):
        if selector.startswith("video."):
            matches = [v for v in self.videos if v.primary]
        elif selector == "video":
            matches = list(self.videos)
        else:
            matches = []
        return matches[0] if matches else None
    
    def location(self):
        return self.url
    
    def observe_mutations(self, callback):
        subscription = next(self._ids)
        self._subscribers[subscription] = callback
        return subscription
    
    def disconnect(self, subscription):
        self._subscribers.pop(subscription, None)
    
    def channel_id(self):
        return self.channel
    
    @property
    def subscriber_count(self):
        return len(self._subscribers)
    
    def mutate(self):
        for callback in list(self._subscribers.values()):
            callback()
    
    def mount(self, video, notify=True):
        self.videos.append(video)
        if notify:
            self.mutate()
        return video
    
    def unmount(self, video, notify=True):
        self.videos.remove(video)
        video.connected = False
        if notify:
            self.mutate()
    
    def navigate(self, url, notify=True):
        """history.pushState-style navigation: no reload."""
        self.url = url
        if notify:
            self.mutate()


class FakeClock:
    def __init__(self, start=100.0):
        self.now = start
    
    def __call__(self):
        return self.now
    
    def advance(self, seconds):
        self.now += seconds


class FakeSettings:
    """Settings collaborator double with a controllable snapshot."""
    
    def __init__(self, values=None, unavailable=False):
        self.values = dict(values or {})
        self.unavailable = unavailable
        self.listeners = []
    
    def get(self, keys):
        from speedpilot.exceptions import SettingsUnavailableError
        if self.unavailable:
            raise SettingsUnavailableError("fake", "storage offline")
        return {k: self.values.get(k) for k in keys}
    
    def on_change(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)
    
    def push(self, changes):
        for listener in list(self.listeners):
            listener(changes)


@pytest.fixture
def enforcer_settings():
    return EnforcerSettings(**EnforcerConfig.DEFAULTS)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers(clock):
    return TimerQueue(clock=clock)


@pytest.fixture
def document():
    return FakeDocument()


@pytest.fixture
def store(tmp_path):
    return SettingsStore(tmp_path / "settings.yaml")


@pytest.fixture
def make_coordinator(document, timers, store, enforcer_settings):
    """Factory: Coordinator over the fake document (settings default to store)."""
    def _factory(settings=None, host=None):
        return Coordinator(host or document, settings or store, timers, config=enforcer_settings)
    return _factory


@pytest.fixture
def tick(clock, timers):
    """Advance fake time and fire due timers."""
    def _tick(seconds):
        clock.advance(seconds)
        return timers.run_due()
    return _tick
