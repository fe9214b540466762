"""Enforcer Configuration - Single Authority for Enforcement Tunables

Mirrors SettingsStore for user preferences. Components read from here,
never hardcode selectors or delays.

RESPONSIBILITY:
- Load config/speedpilot.yaml
- Provide get() singleton
- Expose typed config values (selectors, delays, browser launch options)

DOES NOT:
- Hold user preferences like speed (SettingsStore's job)
- Track videos or sessions
- Decide when to enforce
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Literal
from dataclasses import dataclass


@dataclass(frozen=True)
class EnforcerSettings:
    """Immutable enforcer configuration snapshot.
    
    Delays are in seconds. They bridge host-side renegotiation windows
    (ads, buffering, SPA view swaps) and are empirical, hence configurable.
    """
    primary_selector: str
    fallback_selector: str
    resume_delay: float
    resume_fallback_delay: float
    navigation_delay: float
    navigation_fallback_delay: float
    default_browser: Literal["chromium", "chrome", "edge", "firefox"]
    headless: bool
    user_data_dir: str  # "auto" | "isolated" | path
    timeout_ms: int
    pump_interval_ms: int
    settings_path: str  # "auto" | path
    settings_poll_interval: float


class EnforcerConfig:
    """Singleton enforcer configuration authority.
    
    Usage:
        config = EnforcerConfig.get()
        settings = config.settings
        selector = settings.primary_selector
    """
    
    _instance: Optional["EnforcerConfig"] = None
    _settings: Optional[EnforcerSettings] = None
    
    # Defaults (used if yaml missing or invalid)
    DEFAULTS = {
        "primary_selector": "video.html5-main-video",
        "fallback_selector": "video",
        "resume_delay": 0.2,
        "resume_fallback_delay": 1.0,
        "navigation_delay": 0.5,
        "navigation_fallback_delay": 1.5,
        "default_browser": "chromium",
        "headless": False,
        "user_data_dir": "auto",
        "timeout_ms": 30000,
        "pump_interval_ms": 50,
        "settings_path": "auto",
        "settings_poll_interval": 1.0,
    }
    
    config_path = Path(__file__).parent.parent / "config" / "speedpilot.yaml"
    
    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load()
        return cls._instance
    
    @classmethod
    def get(cls) -> "EnforcerConfig":
        """Get singleton instance."""
        return cls()
    
    @property
    def settings(self) -> EnforcerSettings:
        """Get current enforcer settings."""
        if self._settings is None:
            self._load()
        return self._settings
    
    def _load(self) -> None:
        """Load configuration from speedpilot.yaml."""
        config_path = self.config_path
        
        raw_config: Dict[str, Any] = {}
        
        if config_path.exists():
            try:
                import yaml
                with open(config_path, encoding="utf-8") as f:
                    full_config = yaml.safe_load(f) or {}
                    raw_config = full_config.get("enforcer", {}) or {}
                    logging.info(f"Loaded enforcer config from {config_path}")
            except Exception as e:
                logging.warning(f"Failed to load speedpilot.yaml: {e}, using defaults")
        else:
            logging.info(f"No speedpilot.yaml found at {config_path}, using defaults")
        
        unknown = set(raw_config) - set(self.DEFAULTS)
        if unknown:
            logging.warning(f"Ignoring unknown enforcer options: {sorted(unknown)}")
        
        # Merge with defaults
        merged = {**self.DEFAULTS, **{k: v for k, v in raw_config.items() if k in self.DEFAULTS}}
        
        self._settings = EnforcerSettings(
            primary_selector=str(merged["primary_selector"]),
            fallback_selector=str(merged["fallback_selector"]),
            resume_delay=float(merged["resume_delay"]),
            resume_fallback_delay=float(merged["resume_fallback_delay"]),
            navigation_delay=float(merged["navigation_delay"]),
            navigation_fallback_delay=float(merged["navigation_fallback_delay"]),
            default_browser=merged["default_browser"],
            headless=bool(merged["headless"]),
            user_data_dir=str(merged["user_data_dir"]),
            timeout_ms=int(merged["timeout_ms"]),
            pump_interval_ms=int(merged["pump_interval_ms"]),
            settings_path=str(merged["settings_path"]),
            settings_poll_interval=float(merged["settings_poll_interval"]),
        )
        
        logging.debug(f"EnforcerConfig: {self._settings}")
    
    def reload(self) -> None:
        """Force reload configuration (for testing)."""
        self._load()
    
    @staticmethod
    def resolve_settings_path(settings_path: str) -> Path:
        """Resolve the settings file location.
        
        "auto" maps to ~/.speedpilot/settings.yaml; anything else is used
        as given (with ~ expanded).
        """
        if settings_path in ("auto", "", None):
            return Path.home() / ".speedpilot" / "settings.yaml"
        return Path(settings_path).expanduser()
