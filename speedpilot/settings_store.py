"""Settings Store - Single Authority for User Preferences

Persisted key-value settings with change notifications. This is the
collaborator the enforcement core consumes; it knows nothing about videos.

RESPONSIBILITY:
- Load/save settings.yaml
- Merge stored values over DEFAULTS
- Notify listeners of keys whose value actually changed

DOES NOT:
- Apply rates (Coordinator's job)
- Render any UI
- Hold enforcement tunables (EnforcerConfig's job)
"""

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import yaml

from .exceptions import SettingsUnavailableError


@dataclass(frozen=True)
class SettingChange:
    """One changed key, as delivered to on_change listeners."""
    key: str
    old_value: Any
    new_value: Any


ChangeListener = Callable[[List[SettingChange]], None]

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


class SettingsStore:
    """YAML-backed settings with change notifications.
    
    Usage:
        store = SettingsStore()
        snapshot = store.get(["speed", "autoApply"])
        unsubscribe = store.on_change(lambda changes: ...)
        store.set({"speed": 1.75})
    """
    
    DEFAULTS: Dict[str, Any] = {
        "speed": 2.0,
        "smartResume": True,
        "perChannel": False,
        "autoApply": True,
        "maxSpeed": 3.0,
        "keyboardShortcuts": True,
        "channelSpeeds": {},  # channel id -> speed
    }
    
    RATE_KEYS = ("speed", "maxSpeed")
    BOOL_KEYS = ("smartResume", "perChannel", "autoApply", "keyboardShortcuts")
    
    def __init__(self, path: Optional[Path] = None):
        if path is None:
            from .enforcer_config import EnforcerConfig
            path = EnforcerConfig.resolve_settings_path(EnforcerConfig.get().settings.settings_path)
        
        self.path = Path(path)
        self._stored: Dict[str, Any] = {}
        self._listeners: List[ChangeListener] = []
        self._mtime_ns: Optional[int] = None
    
    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------
    
    def _read(self) -> Dict[str, Any]:
        """Read raw stored values from disk.
        
        Raises SettingsUnavailableError when the file exists but cannot be
        read or does not hold a mapping. A missing file is simply empty.
        """
        if not self.path.exists():
            self._mtime_ns = None
            return {}
        
        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            self._mtime_ns = self.path.stat().st_mtime_ns
        except (OSError, yaml.YAMLError) as e:
            raise SettingsUnavailableError(str(self.path), f"Cannot read settings: {e}") from e
        
        if not isinstance(data, dict):
            raise SettingsUnavailableError(
                str(self.path), f"Settings file must hold a mapping, got {type(data).__name__}"
            )
        return data
    
    def _effective(self, stored: Dict[str, Any]) -> Dict[str, Any]:
        merged = copy.deepcopy(self.DEFAULTS)
        for key, value in stored.items():
            merged[key] = copy.deepcopy(value)
        return merged
    
    def get(self, keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Get values with defaults filled in.
        
        Args:
            keys: Keys to fetch. None returns every setting.
        
        Returns:
            Mapping of key -> value (default when not stored)
        """
        self._stored = self._read()
        merged = self._effective(self._stored)
        if keys is None:
            return merged
        return {key: merged.get(key) for key in keys}
    
    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    
    def set(self, values: Dict[str, Any]) -> List[SettingChange]:
        """Set one or more values, persist them, and notify listeners.
        
        Returns the list of keys whose effective value changed.
        """
        try:
            current = self._read()
        except SettingsUnavailableError as e:
            logging.warning(f"Overwriting unreadable settings: {e}")
            current = dict(self._stored)
        
        before = self._effective(current)
        updated = {**current, **copy.deepcopy(values)}
        self._write(updated)
        self._stored = updated
        
        changes = self._diff(before, self._effective(updated))
        self._notify(changes)
        return changes
    
    def reset(self) -> List[SettingChange]:
        """Reset everything to DEFAULTS."""
        return self.set(copy.deepcopy(self.DEFAULTS))
    
    def _write(self, values: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(values, f, default_flow_style=False, sort_keys=True)
        self._mtime_ns = self.path.stat().st_mtime_ns
        logging.debug(f"Saved settings to {self.path}")
    
    def poll(self) -> bool:
        """Reload the file if it changed on disk and notify the differences.
        
        Picks up writes made by another process (a UI, or `main.py set`).
        Returns True if any effective value changed.
        """
        try:
            mtime_ns = self.path.stat().st_mtime_ns if self.path.exists() else None
        except OSError as e:
            logging.warning(f"Cannot stat settings file {self.path}: {e}")
            return False
        
        if mtime_ns == self._mtime_ns:
            return False
        
        before = self._effective(self._stored)
        try:
            self._stored = self._read()
        except SettingsUnavailableError as e:
            # Likely a partial write; the next poll sees the finished file
            logging.warning(f"Settings reload skipped: {e}")
            self._mtime_ns = mtime_ns
            return False
        
        changes = self._diff(before, self._effective(self._stored))
        if changes:
            logging.info(f"Settings changed on disk: {[c.key for c in changes]}")
        self._notify(changes)
        return bool(changes)
    
    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    
    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Subscribe to changes. Returns an unsubscribe callable."""
        self._listeners.append(listener)
        
        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        
        return unsubscribe
    
    @staticmethod
    def _diff(before: Dict[str, Any], after: Dict[str, Any]) -> List[SettingChange]:
        changes = []
        for key in sorted(set(before) | set(after)):
            if before.get(key) != after.get(key):
                changes.append(SettingChange(key, before.get(key), after.get(key)))
        return changes
    
    def _notify(self, changes: List[SettingChange]) -> None:
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                listener(changes)
            except Exception as e:
                logging.error(f"Settings listener failed: {e}")
    
    # ------------------------------------------------------------------
    # Channel-specific speed
    # ------------------------------------------------------------------
    
    def get_channel_speed(self, channel_id: str) -> Optional[float]:
        return self.get(["channelSpeeds"])["channelSpeeds"].get(channel_id)
    
    def set_channel_speed(self, channel_id: str, speed: float) -> List[SettingChange]:
        channel_speeds = self.get(["channelSpeeds"])["channelSpeeds"]
        channel_speeds[channel_id] = speed
        return self.set({"channelSpeeds": channel_speeds})
    
    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------
    
    @classmethod
    def coerce_value(cls, key: str, raw: str) -> Any:
        """Parse command-line text into the typed value for a known key.
        
        Raises:
            ValueError: unknown key or value of the wrong shape
        """
        if key not in cls.DEFAULTS:
            raise ValueError(f"Unknown setting: {key}")
        
        text = raw.strip()
        
        if key in cls.RATE_KEYS:
            try:
                value = float(text)
            except ValueError:
                raise ValueError(f"{key} must be a number, got {raw!r}")
            if value <= 0:
                raise ValueError(f"{key} must be positive, got {value}")
            return value
        
        if key in cls.BOOL_KEYS:
            lowered = text.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(f"{key} must be true/false, got {raw!r}")
        
        # channelSpeeds: inline YAML mapping, e.g. {UCabc: 1.5}
        try:
            value = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"{key} must be a mapping: {e}")
        if not isinstance(value, dict):
            raise ValueError(f"{key} must be a mapping, got {raw!r}")
        return {str(k): float(v) for k, v in value.items()}
