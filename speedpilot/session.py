"""Enforcement Session - Single Authority for Process Lifetime

RESPONSIBILITY:
- Launch the browser host and open the start page
- Build the Coordinator against the settings store
- Run the cooperative loop: pump host events, fire timers, poll settings
- Tear everything down on exit

DOES NOT:
- Decide rates (Coordinator's job)
- Decide tunables (EnforcerConfig's job)

GUARDRAIL: Everything runs on the calling thread. Playwright's sync API
is not thread-safe, and the core relies on single-threaded execution
instead of locks.
"""

import logging
import time
from typing import Any, Callable, Optional

from .coordinator import Coordinator
from .enforcer_config import EnforcerConfig, EnforcerSettings
from .scheduler import TimerQueue
from .settings_store import SettingsStore


class EnforcementSession:
    """Owns one host page and its Coordinator.
    
    Usage:
        session = EnforcementSession()
        if session.open("https://www.youtube.com"):
            session.run_forever()
        session.shutdown()
    """
    
    def __init__(
        self,
        config: Optional[EnforcerSettings] = None,
        store: Optional[SettingsStore] = None,
        host: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or EnforcerConfig.get().settings
        self.store = store or SettingsStore(
            EnforcerConfig.resolve_settings_path(self.config.settings_path)
        )
        self.host = host
        self.timers = TimerQueue(clock=clock)
        self.coordinator: Optional[Coordinator] = None
        self._clock = clock
        self._next_poll = 0.0
        self._running = False
    
    def open(
        self,
        url: str,
        browser_type: Optional[str] = None,
        headless: Optional[bool] = None,
    ) -> bool:
        """Launch (unless a host was injected), open url, start enforcing."""
        if self.host is None:
            from ._host.playwright import PlaywrightHost
            self.host = PlaywrightHost()
            self.host.launch(
                browser_type=browser_type or self.config.default_browser,
                headless=self.config.headless if headless is None else headless,
                user_data_dir=self.config.user_data_dir,
            )
        
        if not self.host.open(url, timeout_ms=self.config.timeout_ms):
            return False
        
        self.coordinator = Coordinator(self.host, self.store, self.timers, config=self.config)
        self.coordinator.start()
        self._next_poll = self._clock() + self.config.settings_poll_interval
        logging.info(f"Enforcement session started on {url}")
        return True
    
    def step(self) -> bool:
        """Run one loop iteration. Returns False once the page is gone."""
        if self.host is None or self.host.is_closed():
            return False
        
        try:
            self.host.pump(self.config.pump_interval_ms)
        except Exception as e:
            # Closing the window mid-wait surfaces as a driver error
            if self.host.is_closed():
                logging.info(f"Page closed during pump: {e}")
                return False
            logging.warning(f"Host pump failed: {e}")
        self.timers.run_due()
        
        now = self._clock()
        if now >= self._next_poll:
            self.store.poll()
            self._next_poll = now + self.config.settings_poll_interval
        return True
    
    def run_forever(self, max_iterations: Optional[int] = None) -> None:
        """Loop until the page closes, Ctrl+C, or max_iterations."""
        self._running = True
        iterations = 0
        try:
            while self._running:
                if not self.step():
                    logging.info("Page closed, ending session")
                    break
                iterations += 1
                if max_iterations is not None and iterations >= max_iterations:
                    break
        except KeyboardInterrupt:
            logging.info("Interrupted, ending session")
        finally:
            self._running = False
    
    def stop(self) -> None:
        """Ask run_forever to return after the current iteration."""
        self._running = False
    
    def shutdown(self) -> None:
        """Stop the coordinator and the host. Safe to call twice."""
        if self.coordinator is not None:
            try:
                self.coordinator.stop()
            except Exception as e:
                logging.warning(f"Error stopping coordinator: {e}")
            self.coordinator = None
        
        if self.host is not None and hasattr(self.host, "shutdown"):
            try:
                self.host.shutdown()
            except Exception as e:
                logging.warning(f"Error shutting down host: {e}")
        
        logging.info("EnforcementSession shutdown complete")
