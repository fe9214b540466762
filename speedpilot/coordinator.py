"""Coordinator - owns the enforcement core for one host document.

RESPONSIBILITY:
- Read the settings snapshot once at startup (defaults if unavailable)
- Own the PlaybackPolicy and every component instance
- React to settings changes and re-apply when enforcement is enabled

DOES NOT:
- Persist settings (SettingsStore's job)
- Decide which element is the video (VideoTracker's job)
- Drive the event loop (EnforcementSession's job)

All state lives on the instance, so independent coordinators never share
a policy or a tracked video.
"""

import copy
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from ._host.base import AbstractHostDocument
from .enforcer_config import EnforcerConfig, EnforcerSettings
from .exceptions import SettingsUnavailableError
from .navigation_watcher import NavigationWatcher
from .policy import PlaybackPolicy
from .rate_enforcer import RateEnforcer
from .resume_guard import ResumeGuard
from .scheduler import TimerQueue
from .settings_store import SettingsStore
from .video_tracker import VideoTracker


class Coordinator:
    """Wires RateEnforcer, ResumeGuard, VideoTracker and NavigationWatcher.
    
    Usage:
        coordinator = Coordinator(host, SettingsStore(), TimerQueue())
        coordinator.start()
        ...
        coordinator.stop()
    """
    
    RECOGNIZED_KEYS = ("speed", "autoApply", "smartResume", "maxSpeed", "perChannel", "channelSpeeds")
    
    def __init__(
        self,
        host: AbstractHostDocument,
        settings: Any,
        timers: TimerQueue,
        config: Optional[EnforcerSettings] = None,
        enforcer: Optional[RateEnforcer] = None,
    ):
        """
        Args:
            host: Document hosting the player
            settings: Settings collaborator exposing get(keys) and
                      on_change(listener) -> unsubscribe
            timers: Queue for the fixed-delay re-checks
            config: Tunables; EnforcerConfig singleton when omitted
        """
        config = config or EnforcerConfig.get().settings
        
        self._host = host
        self._settings = settings
        self._timers = timers
        self.enforcer = enforcer or RateEnforcer()
        self.policy = PlaybackPolicy()
        self.snapshot: Dict[str, Any] = self._defaults()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._started = False
        
        self.guard = ResumeGuard(
            self.enforce_now,
            timers,
            resume_delay=config.resume_delay,
            resume_fallback_delay=config.resume_fallback_delay,
        )
        self.tracker = VideoTracker(
            host,
            self.guard,
            self.policy,
            self.enforce_now,
            primary_selector=config.primary_selector,
            fallback_selector=config.fallback_selector,
        )
        self.navigation = NavigationWatcher(
            host,
            self.tracker,
            timers,
            self.enforce_now,
            navigation_delay=config.navigation_delay,
            navigation_fallback_delay=config.navigation_fallback_delay,
            on_navigate=self._on_navigate,
        )
    
    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    
    def start(self) -> None:
        """Load settings, apply them, then start watching the document."""
        if self._started:
            return
        
        try:
            loaded = self._settings.get(list(self.RECOGNIZED_KEYS))
            self.snapshot.update({k: v for k, v in loaded.items() if v is not None})
        except SettingsUnavailableError as e:
            logging.warning(f"Settings unavailable, using defaults: {e}")
        
        self._refresh_policy()
        logging.info(
            f"Coordinator starting: rate={self.policy.target_rate} "
            f"enforce={self.policy.enforcement_enabled} resume={self.policy.resume_enabled}"
        )
        
        self._unsubscribe = self._settings.on_change(self.on_settings_changed)
        # Navigation first: an invalidation in a mutation batch must precede
        # the tracker's look at the same batch
        self.navigation.start()
        self.tracker.start()
        self._started = True
        
        self.enforce_now()
    
    def stop(self) -> None:
        """Tear down observers and per-video listeners."""
        if not self._started:
            return
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.navigation.stop()
        self.tracker.stop()
        self._started = False
        logging.info("Coordinator stopped")
    
    # ------------------------------------------------------------------
    # Enforcement
    # ------------------------------------------------------------------
    
    def enforce_now(self) -> bool:
        """Apply the policy to the current video. True if a write happened."""
        if self.snapshot.get("perChannel"):
            # Channel is only known once the new view has mounted
            self._refresh_policy()
        if not self.policy.can_enforce:
            return False
        return self.enforcer.apply(self.tracker.find_video(), self.policy.target_rate)
    
    def on_settings_changed(self, changes: Iterable[Any]) -> bool:
        """Handle a settings change notification.
        
        Args:
            changes: Items with .key and .new_value (SettingChange)
        
        Returns:
            True if the policy changed
        """
        recognized = [c for c in changes if c.key in self.RECOGNIZED_KEYS]
        if not recognized:
            return False
        
        defaults = self._defaults()
        for change in recognized:
            value = change.new_value
            self.snapshot[change.key] = defaults[change.key] if value is None else copy.deepcopy(value)
        
        was_resume_enabled = self.policy.resume_enabled
        changed = self._refresh_policy()
        if changed:
            logging.info(f"Policy updated from {[c.key for c in recognized]}: {self.policy}")
        
        if self.policy.resume_enabled and not was_resume_enabled:
            self.tracker.attach_guard()
        
        if self.policy.enforcement_enabled:
            self.enforce_now()
        return changed
    
    # ------------------------------------------------------------------
    # Policy resolution
    # ------------------------------------------------------------------
    
    @staticmethod
    def _defaults() -> Dict[str, Any]:
        return {k: copy.deepcopy(SettingsStore.DEFAULTS[k]) for k in Coordinator.RECOGNIZED_KEYS}
    
    def _rate_setting(self, key: str) -> Optional[float]:
        value = self.snapshot.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logging.warning(f"Ignoring non-numeric {key}={value!r}, using default")
            value = SettingsStore.DEFAULTS[key]
        return float(value)
    
    @staticmethod
    def _channel_rate(channel: str, value: Any, fallback: float) -> float:
        if isinstance(value, bool):
            value = None
        try:
            rate = float(value)
        except (TypeError, ValueError):
            rate = 0.0
        if rate <= 0:
            logging.warning(f"Ignoring invalid speed {value!r} for channel {channel}, using {fallback}")
            return fallback
        return rate
    
    def resolve_target_rate(self) -> float:
        """Effective rate: channel speed if enabled, capped by maxSpeed."""
        rate = self._rate_setting("speed")
        
        if self.snapshot.get("perChannel"):
            channel_speeds = self.snapshot.get("channelSpeeds") or {}
            if not isinstance(channel_speeds, dict):
                logging.warning(f"Ignoring non-mapping channelSpeeds={channel_speeds!r}")
                channel_speeds = {}
            try:
                channel = self._host.channel_id()
            except Exception as e:
                logging.debug(f"Channel lookup failed: {e}")
                channel = None
            if channel is not None and channel in channel_speeds:
                rate = self._channel_rate(channel, channel_speeds[channel], rate)
        
        max_speed = self._rate_setting("maxSpeed")
        if max_speed > 0 and rate > max_speed:
            logging.debug(f"Capping rate {rate} at maxSpeed {max_speed}")
            rate = max_speed
        return rate
    
    def _refresh_policy(self) -> bool:
        before = (self.policy.target_rate, self.policy.enforcement_enabled, self.policy.resume_enabled)
        
        self.policy.target_rate = self.resolve_target_rate()
        self.policy.enforcement_enabled = self.snapshot.get("autoApply") is not False
        self.policy.resume_enabled = self.snapshot.get("smartResume") is not False
        
        after = (self.policy.target_rate, self.policy.enforcement_enabled, self.policy.resume_enabled)
        return before != after
    
    def _on_navigate(self, location: str) -> None:
        if self.snapshot.get("perChannel"):
            self._refresh_policy()
