"""Tests for VideoTracker state machine.

Verifies:
1. NO_VIDEO -> VIDEO_PRESENT_SEEN on discovery, with enforcement wired
2. Source change on the same element re-runs discovery
3. Primary selector wins over the generic fallback
4. Superseded videos lose every listener
"""

import pytest

from speedpilot.policy import PlaybackPolicy
from speedpilot.rate_enforcer import RateEnforcer
from speedpilot.resume_guard import ResumeGuard
from speedpilot.video_tracker import TrackerState, VideoTracker
from conftest import FakeVideo


@pytest.fixture
def policy():
    return PlaybackPolicy(target_rate=2.0)


@pytest.fixture
def tracker(document, timers, policy):
    enforcer = RateEnforcer()
    holder = {}
    
    def enforce():
        return enforcer.apply(holder["tracker"].find_video(), policy.target_rate)
    
    guard = ResumeGuard(enforce, timers)
    holder["tracker"] = VideoTracker(document, guard, policy, enforce)
    return holder["tracker"]


class TestDiscovery:
    
    def test_starts_in_no_video(self, tracker):
        tracker.start()
        assert tracker.state is TrackerState.NO_VIDEO
    
    def test_video_present_at_start_is_picked_up(self, document, tracker):
        video = document.mount(FakeVideo(rate=1.0), notify=False)
        
        tracker.start()
        
        assert tracker.state is TrackerState.VIDEO_PRESENT_SEEN
        assert video.playback_rate == 2.0
    
    def test_mutation_reveals_video(self, document, tracker):
        tracker.start()
        video = document.mount(FakeVideo(rate=1.0))
        
        assert tracker.state is TrackerState.VIDEO_PRESENT_SEEN
        assert tracker.tracked.handle is video
        assert video.playback_rate == 2.0
    
    def test_discovery_wires_guard_and_ready_hooks(self, document, tracker):
        tracker.start()
        video = document.mount(FakeVideo())
        
        assert video.listener_count("ratechange") == 1
        assert video.listener_count("playing") == 1
        for event in ("loadedmetadata", "canplay", "loadeddata"):
            assert video.listener_count(event) == 1
    
    def test_ready_hooks_fire_once(self, document, tracker):
        tracker.start()
        video = document.mount(FakeVideo())
        
        video.player_sets_rate(1.0, notify=False)
        video.fire("loadedmetadata")
        assert video.playback_rate == 2.0
        assert video.listener_count("loadedmetadata") == 0
    
    def test_mutation_burst_wires_once(self, document, tracker):
        tracker.start()
        video = document.mount(FakeVideo(rate=1.0))
        for _ in range(20):
            document.mutate()
        
        assert video.writes == 1
        assert video.listener_count("ratechange") == 1


class TestSourceChange:
    
    def test_new_source_on_same_element_is_rediscovered(self, document, tracker):
        tracker.start()
        video = document.mount(FakeVideo(src="https://cdn.example/a.mp4"))
        first = tracker.tracked
        
        video.src = "https://cdn.example/b.mp4"
        video.player_sets_rate(1.0, notify=False)
        document.mutate()
        
        assert tracker.tracked is not first
        assert tracker.tracked.source_identity == "https://cdn.example/b.mp4"
        assert tracker.tracked.seen
        assert video.playback_rate == 2.0
    
    def test_old_listeners_released_on_source_change(self, document, tracker):
        tracker.start()
        video = document.mount(FakeVideo(src="https://cdn.example/a.mp4"))
        
        video.src = "https://cdn.example/b.mp4"
        document.mutate()
        
        # One fresh set, not two stacked sets
        assert video.listener_count("ratechange") == 1
        assert video.listener_count("playing") == 1
        assert video.listener_count("canplay") == 1
    
    def test_removed_video_returns_to_no_video(self, document, tracker):
        tracker.start()
        video = document.mount(FakeVideo())
        
        document.unmount(video)
        
        assert tracker.state is TrackerState.NO_VIDEO
        assert video.listener_count() == 0


class TestSelection:
    
    def test_primary_selector_wins_over_fallback(self, document, tracker):
        ad = document.mount(FakeVideo(src="https://ads.example/ad.mp4", primary=False), notify=False)
        main = document.mount(FakeVideo(src="https://cdn.example/main.mp4"), notify=False)
        
        tracker.start()
        
        assert tracker.tracked.handle is main
        assert main.playback_rate == 2.0
        assert ad.playback_rate == 1.0
        assert ad.writes == 0
    
    def test_fallback_used_without_primary(self, document, tracker):
        generic = document.mount(FakeVideo(primary=False), notify=False)
        
        tracker.start()
        
        assert tracker.tracked.handle is generic
    
    def test_invalidate_clears_seen(self, document, tracker):
        tracker.start()
        video = document.mount(FakeVideo())
        
        tracker.invalidate()
        
        assert tracker.state is TrackerState.VIDEO_PRESENT_UNSEEN
        assert video.listener_count() == 0
        
        document.mutate()
        assert tracker.state is TrackerState.VIDEO_PRESENT_SEEN
        assert video.listener_count("ratechange") == 1
    
    def test_stop_disconnects_and_releases(self, document, tracker):
        tracker.start()
        video = document.mount(FakeVideo())
        
        tracker.stop()
        
        assert document.subscriber_count == 0
        assert video.listener_count() == 0
        assert tracker.state is TrackerState.NO_VIDEO
