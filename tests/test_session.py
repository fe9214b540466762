"""Tests for EnforcementSession loop wiring (no browser)."""

import logging

import pytest

from speedpilot.session import EnforcementSession
from conftest import FakeClock, FakeDocument, FakeVideo


class LoopDocument(FakeDocument):
    """FakeDocument with the extra surface the session drives."""
    
    def __init__(self, pages_before_close=None, **kwargs):
        super().__init__(**kwargs)
        self.opened = []
        self.pumps = 0
        self.closed = False
        self.shut_down = False
        self.open_result = True
        self.on_pump = None
        self._pages_before_close = pages_before_close
        self.clock = None
    
    def open(self, url, timeout_ms=30000):
        self.opened.append(url)
        return self.open_result
    
    def pump(self, timeout_ms=50):
        self.pumps += 1
        if self.clock is not None:
            self.clock.advance(timeout_ms / 1000.0)
        if self.on_pump is not None:
            self.on_pump(self.pumps)
        if self._pages_before_close is not None and self.pumps >= self._pages_before_close:
            self.closed = True
        return 0
    
    def is_closed(self):
        return self.closed
    
    def shutdown(self):
        self.shut_down = True


@pytest.fixture
def loop_clock():
    return FakeClock()


@pytest.fixture
def loop_host(loop_clock):
    host = LoopDocument()
    host.clock = loop_clock
    return host


@pytest.fixture
def session(enforcer_settings, store, loop_host, loop_clock):
    return EnforcementSession(config=enforcer_settings, store=store, host=loop_host, clock=loop_clock)


class TestEnforcementSession:
    
    def test_open_starts_coordinator(self, session, loop_host):
        video = loop_host.mount(FakeVideo(rate=1.0), notify=False)
        
        assert session.open("https://www.youtube.com") is True
        
        assert loop_host.opened == ["https://www.youtube.com"]
        assert session.coordinator is not None
        assert video.playback_rate == 2.0
    
    def test_failed_open_does_not_start(self, session, loop_host):
        loop_host.open_result = False
        
        assert session.open("https://www.youtube.com") is False
        assert session.coordinator is None
    
    def test_step_fires_timers(self, session, loop_host):
        session.open("https://www.youtube.com")
        loop_host.navigate("https://www.youtube.com/watch?v=1")
        video = loop_host.mount(FakeVideo(rate=1.0), notify=False)
        
        for _ in range(11):  # 50ms pumps past the 0.5s re-check
            session.step()
        
        assert video.playback_rate == 2.0
    
    def test_settings_polled_from_disk(self, session, loop_host, store):
        session.open("https://www.youtube.com")
        video = loop_host.mount(FakeVideo(rate=1.0))
        
        # Another process writes the file
        other = type(store)(store.path)
        other.set({"speed": 1.5})
        session._next_poll = 0.0
        session.step()
        
        assert video.playback_rate == 1.5
    
    def test_run_forever_ends_when_page_closes(self, session, loop_host):
        loop_host._pages_before_close = 3
        session.open("https://www.youtube.com")
        
        session.run_forever()
        
        assert loop_host.pumps == 3
    
    def test_run_forever_max_iterations(self, session, loop_host):
        session.open("https://www.youtube.com")
        
        session.run_forever(max_iterations=5)
        
        assert loop_host.pumps == 5
    
    def test_keyboard_interrupt_ends_loop(self, session, loop_host):
        def interrupt(n):
            raise KeyboardInterrupt
        loop_host.on_pump = interrupt
        session.open("https://www.youtube.com")
        
        session.run_forever()
        
        assert loop_host.pumps == 1
    
    def test_window_closed_during_pump_ends_loop(self, session, loop_host, caplog):
        def close_mid_wait(n):
            loop_host.closed = True
            raise Exception("Target page, context or browser has been closed")
        loop_host.on_pump = close_mid_wait
        session.open("https://www.youtube.com")
        
        with caplog.at_level(logging.INFO):
            session.run_forever()
        
        assert loop_host.pumps == 1
        assert "Page closed during pump" in caplog.text
    
    def test_transient_pump_failure_keeps_looping(self, session, loop_host, caplog):
        def flaky(n):
            if n == 1:
                raise Exception("driver hiccup")
        loop_host.on_pump = flaky
        session.open("https://www.youtube.com")
        
        with caplog.at_level(logging.WARNING):
            session.run_forever(max_iterations=3)
        
        assert loop_host.pumps == 3
        assert "Host pump failed" in caplog.text
    
    def test_shutdown_stops_everything(self, session, loop_host):
        session.open("https://www.youtube.com")
        
        session.shutdown()
        session.shutdown()
        
        assert loop_host.shut_down is True
        assert loop_host.subscriber_count == 0
        assert session.coordinator is None
