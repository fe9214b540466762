"""Playwright Host Document Implementation

Implements AbstractHostDocument over a live browser page.
Uses the sync API; the whole core runs on the thread that calls pump().

A bridge script injected into every document reports DOM mutations and
media events back through one exposed binding. Binding callbacks only
queue events. pump() dispatches them after the page has run, so core
handlers never execute inside a Playwright callback.

Dependency: playwright
Setup: playwright install chromium
"""

import itertools
import logging
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from ..exceptions import HostDetachedError, TransientApplyFailure
from .base import AbstractHostDocument, MediaCallback, MediaHandle, MutationCallback


BINDING_NAME = "__speedpilotEmit"

# Idempotent: safe to evaluate on a page that already ran it as init script
BRIDGE_SCRIPT = """
(() => {
  if (window.__speedpilot) return;
  const state = { prefix: Math.random().toString(36).slice(2, 8), nextId: 1, listeners: new Map() };
  window.__speedpilot = state;
  const emit = (kind, payload) => {
    try { window.__speedpilotEmit(kind, payload); } catch (e) {}
  };
  state.tag = (el) => {
    if (!el.dataset.speedpilotId) el.dataset.speedpilotId = state.prefix + '-' + (state.nextId++);
    return el.dataset.speedpilotId;
  };
  state.find = (id) => document.querySelector(`[data-speedpilot-id="${id}"]`);
  state.listen = (id, lid, event, once) => {
    const el = state.find(id);
    if (!el) return false;
    const fn = () => {
      if (once) state.listeners.delete(lid);
      emit('media', { listener: lid, event: event });
    };
    el.addEventListener(event, fn, { once: once });
    state.listeners.set(lid, { el: el, event: event, fn: fn });
    return true;
  };
  state.unlisten = (lid) => {
    const entry = state.listeners.get(lid);
    if (!entry) return false;
    entry.el.removeEventListener(entry.event, entry.fn);
    state.listeners.delete(lid);
    return true;
  };
  new MutationObserver(() => emit('mutation', location.href))
    .observe(document, { childList: true, subtree: true });
})();
"""

_QUERY = "(sel) => { const el = document.querySelector(sel); return el ? window.__speedpilot.tag(el) : null; }"
_GET_RATE = "(id) => { const el = window.__speedpilot.find(id); return el ? el.playbackRate : null; }"
_SET_RATE = "([id, rate]) => { const el = window.__speedpilot.find(id); if (!el) return false; el.playbackRate = rate; return true; }"
_GET_SOURCE = "(id) => { const el = window.__speedpilot.find(id); return el ? (el.currentSrc || el.src || '') : null; }"
_IS_CONNECTED = "(id) => { const el = window.__speedpilot.find(id); return !!(el && el.isConnected); }"
_LISTEN = "([id, lid, event, once]) => window.__speedpilot.listen(id, lid, event, once)"
_UNLISTEN = "(lid) => window.__speedpilot.unlisten(lid)"
_CHANNEL_ID = """
() => {
  const meta = document.querySelector('meta[itemprop="channelId"]');
  if (meta && meta.content) return meta.content;
  const link = document.querySelector('span[itemprop="author"] link[itemprop="url"]');
  if (link && link.href) return link.href.split('/').filter(Boolean).pop();
  return null;
}
"""


class PlaywrightMediaHandle(MediaHandle):
    """A media element addressed by its data-speedpilot-id attribute."""
    
    def __init__(self, host: "PlaywrightHost", element_id: str):
        self._host = host
        self.element_id = element_id
    
    def __eq__(self, other):
        return (
            isinstance(other, PlaywrightMediaHandle)
            and other._host is self._host
            and other.element_id == self.element_id
        )
    
    def __hash__(self):
        return hash((id(self._host), self.element_id))
    
    def __repr__(self):
        return f"PlaywrightMediaHandle({self.element_id!r})"
    
    @property
    def playback_rate(self) -> float:
        rate = self._host.page.evaluate(_GET_RATE, self.element_id)
        if rate is None:
            raise HostDetachedError(f"Video {self.element_id} is detached")
        return rate
    
    @playback_rate.setter
    def playback_rate(self, value: float) -> None:
        try:
            applied = self._host.page.evaluate(_SET_RATE, [self.element_id, value])
        except Exception as e:
            raise TransientApplyFailure(f"Rate rejected by page: {e}", rate=value) from e
        if not applied:
            raise HostDetachedError(f"Video {self.element_id} is detached", rate=value)
    
    @property
    def source_identity(self) -> str:
        source = self._host.page.evaluate(_GET_SOURCE, self.element_id)
        if source is None:
            raise HostDetachedError(f"Video {self.element_id} is detached")
        return source
    
    def is_connected(self) -> bool:
        try:
            return bool(self._host.page.evaluate(_IS_CONNECTED, self.element_id))
        except Exception:
            return False
    
    def add_listener(self, event: str, callback: MediaCallback, once: bool = False) -> int:
        listener_id = self._host._register_listener(callback, once)
        attached = self._host.page.evaluate(_LISTEN, [self.element_id, listener_id, event, once])
        if not attached:
            self._host._listeners.pop(listener_id, None)
            raise HostDetachedError(f"Video {self.element_id} is detached")
        return listener_id
    
    def remove_listener(self, listener: int) -> None:
        if self._host._listeners.pop(listener, None) is None:
            return
        self._host.page.evaluate(_UNLISTEN, listener)


class PlaywrightHost(AbstractHostDocument):
    """Playwright implementation of the host document."""
    
    def __init__(self, page: Any = None):
        self._playwright = None
        self._sync_playwright = None
        self.browser = None
        self.context = None
        self.page = None
        
        self._events: Deque[Tuple[str, Any]] = deque()
        self._mutation_subscribers: Dict[int, MutationCallback] = {}
        self._listeners: Dict[int, Tuple[MediaCallback, bool]] = {}
        self._ids = itertools.count(1)
        
        if page is not None:
            self.attach(page)
    
    # ------------------------------------------------------------------
    # Browser lifecycle
    # ------------------------------------------------------------------
    
    def _ensure_playwright(self):
        """Lazily initialize Playwright."""
        if self._playwright is None:
            try:
                from playwright.sync_api import sync_playwright
                self._sync_playwright = sync_playwright()
                self._playwright = self._sync_playwright.start()
                logging.info("Playwright engine initialized")
            except ImportError:
                raise RuntimeError(
                    "Playwright not installed. Run: pip install playwright && playwright install chromium"
                )
    
    def launch(
        self,
        browser_type: str = "chromium",
        headless: bool = False,
        user_data_dir: str = "auto"
    ) -> Any:
        """Launch a browser and attach to its first page.
        
        Persistent context (user_data_dir is a path):
        - Uses launch_persistent_context()
        - Keeps cookies, logins, sessions across runs
        
        Ephemeral context (auto/isolated):
        - Uses browser.new_context()
        - Fresh profile each time
        
        Returns:
            The attached Playwright Page
        """
        self._ensure_playwright()
        
        # Map browser type to Playwright browser
        browser_map = {
            "chromium": self._playwright.chromium,
            "chrome": self._playwright.chromium,
            "edge": self._playwright.chromium,
            "firefox": self._playwright.firefox,
        }
        
        browser_launcher = browser_map.get(browser_type)
        if not browser_launcher:
            raise ValueError(f"Unknown browser type: {browser_type}")
        
        # Handle Chrome/Edge channel
        channel = None
        if browser_type == "chrome":
            channel = "chrome"
        elif browser_type == "edge":
            channel = "msedge"
        
        launch_opts = {"headless": headless}
        if channel:
            launch_opts["channel"] = channel
        
        try:
            if user_data_dir not in ("auto", "isolated"):
                profile_path = Path(user_data_dir).expanduser()
                profile_path.mkdir(parents=True, exist_ok=True)
                logging.info(f"Using persistent profile: {profile_path}")
                
                self.context = browser_launcher.launch_persistent_context(
                    user_data_dir=str(profile_path), **launch_opts
                )
                page = self.context.pages[0] if self.context.pages else self.context.new_page()
            else:
                self.browser = browser_launcher.launch(**launch_opts)
                self.context = self.browser.new_context()
                page = self.context.new_page()
        except Exception as e:
            logging.error(f"Failed to launch {browser_type}: {e}")
            raise RuntimeError(f"Browser launch failed: {e}")
        
        logging.info(f"Launched {browser_type} (headless={headless})")
        self.attach(page)
        return page
    
    def attach(self, page: Any) -> None:
        """Install the bridge on page. Applies to every later navigation."""
        self.page = page
        page.expose_binding(BINDING_NAME, self._on_bridge_event)
        page.add_init_script(BRIDGE_SCRIPT)
    
    def open(self, url: str, timeout_ms: int = 30000) -> bool:
        """Navigate to URL and make sure the bridge is live."""
        if not url.startswith(("http://", "https://", "file://", "about:")):
            url = f"https://{url}"
        
        try:
            self.page.goto(url, timeout=timeout_ms)
        except Exception as e:
            logging.error(f"Navigation failed: {e}")
            return False
        
        # Covers documents loaded before the init script was registered
        self.page.evaluate(BRIDGE_SCRIPT)
        logging.info(f"Opened: {url}")
        return True
    
    def is_closed(self) -> bool:
        try:
            return self.page is None or self.page.is_closed()
        except Exception:
            return True
    
    def shutdown(self) -> None:
        """Close the browser and stop Playwright.
        
        CRITICAL: sync_playwright().start() MUST be matched with .stop().
        """
        try:
            if self.context:
                self.context.close()
            if self.browser:
                self.browser.close()
        except Exception as e:
            logging.warning(f"Error closing browser: {e}")
        finally:
            self.context = None
            self.browser = None
        
        if self._playwright:
            try:
                self._playwright.stop()
                logging.info("Playwright engine stopped")
            except Exception as e:
                logging.warning(f"Error stopping Playwright: {e}")
            finally:
                self._playwright = None
                self._sync_playwright = None
    
    # ------------------------------------------------------------------
    # Event bridge
    # ------------------------------------------------------------------
    
    def _on_bridge_event(self, source: Any, kind: str, payload: Any = None) -> None:
        # Runs inside Playwright's dispatcher: queue only
        self._events.append((kind, payload))
    
    def _register_listener(self, callback: MediaCallback, once: bool) -> int:
        listener_id = next(self._ids)
        self._listeners[listener_id] = (callback, once)
        return listener_id
    
    def pump(self, timeout_ms: int = 50) -> int:
        """Let the page run for timeout_ms, then dispatch queued events."""
        self.page.wait_for_timeout(timeout_ms)
        return self.dispatch_pending()
    
    def dispatch_pending(self) -> int:
        """Dispatch queued events in arrival order. Returns callbacks run.
        
        Consecutive mutation events collapse into one notification, the
        way the DOM batches MutationObserver records.
        """
        dispatched = 0
        previous_kind = None
        while self._events:
            kind, payload = self._events.popleft()
            if kind == "mutation":
                if previous_kind != "mutation":
                    for callback in list(self._mutation_subscribers.values()):
                        dispatched += self._safe_call(callback)
            elif kind == "media":
                listener_id = (payload or {}).get("listener")
                entry = self._listeners.get(listener_id)
                if entry is not None:
                    callback, once = entry
                    if once:
                        self._listeners.pop(listener_id, None)
                    dispatched += self._safe_call(callback)
            else:
                logging.debug(f"Ignoring unknown bridge event {kind!r}")
            previous_kind = kind
        return dispatched
    
    @staticmethod
    def _safe_call(callback: Callable[[], Any]) -> int:
        try:
            callback()
        except Exception as e:
            logging.error(f"Host event handler failed: {e}")
        return 1
    
    # ------------------------------------------------------------------
    # AbstractHostDocument
    # ------------------------------------------------------------------
    
    def query_selector(self, selector: str) -> Optional[PlaywrightMediaHandle]:
        element_id = self.page.evaluate(_QUERY, selector)
        if element_id is None:
            return None
        return PlaywrightMediaHandle(self, element_id)
    
    def location(self) -> str:
        return self.page.url
    
    def observe_mutations(self, callback: MutationCallback) -> int:
        subscription = next(self._ids)
        self._mutation_subscribers[subscription] = callback
        return subscription
    
    def disconnect(self, subscription: int) -> None:
        self._mutation_subscribers.pop(subscription, None)
    
    def channel_id(self) -> Optional[str]:
        return self.page.evaluate(_CHANNEL_ID)
    
    @property
    def pending_events(self) -> List[Tuple[str, Any]]:
        return list(self._events)
