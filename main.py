#!/usr/bin/env python3
"""SpeedPilot Entry Point

Opens a browser page and keeps the chosen playback speed on its video
player across SPA navigation, ads and buffering.

Usage:
    python main.py run https://www.youtube.com          # Enforce in a new browser
    python main.py run youtube.com --speed 1.5 --headless
    python main.py get                                  # Show all settings
    python main.py set speed=1.75 smartResume=false     # Running sessions pick this up
    python main.py reset
"""

import sys
import logging
import argparse
from pathlib import Path
from typing import List, Optional

import yaml

from speedpilot.enforcer_config import EnforcerConfig
from speedpilot.exceptions import SettingsUnavailableError
from speedpilot.settings_store import SettingsStore


def _configure_logging(verbose: bool) -> None:
    # Goes to terminal
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SpeedPilot playback speed enforcer")
    parser.add_argument("--settings", type=Path, default=None, help="Settings file (default from speedpilot.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)
    
    run = sub.add_parser("run", help="Open a page and enforce the playback speed")
    run.add_argument("url", help="Start URL")
    run.add_argument("--browser", choices=["chromium", "chrome", "edge", "firefox"], default=None)
    run.add_argument("--headless", action="store_true", default=None, help="Run without a window")
    run.add_argument("--speed", type=float, default=None, help="Save this speed before starting")
    
    get = sub.add_parser("get", help="Print settings")
    get.add_argument("keys", nargs="*", help="Keys to print (all if omitted)")
    
    set_ = sub.add_parser("set", help="Write settings")
    set_.add_argument("pairs", nargs="+", metavar="KEY=VALUE")
    
    sub.add_parser("reset", help="Restore default settings")
    return parser


def _store(args) -> SettingsStore:
    if args.settings is not None:
        return SettingsStore(args.settings)
    settings = EnforcerConfig.get().settings
    return SettingsStore(EnforcerConfig.resolve_settings_path(settings.settings_path))


def _parse_pairs(pairs: List[str]) -> dict:
    values = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        values[key.strip()] = SettingsStore.coerce_value(key.strip(), raw)
    return values


def cmd_run(args) -> int:
    from speedpilot.session import EnforcementSession
    
    store = _store(args)
    if args.speed is not None:
        try:
            store.set({"speed": SettingsStore.coerce_value("speed", str(args.speed))})
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2
    
    session = EnforcementSession(store=store)
    try:
        if not session.open(args.url, browser_type=args.browser, headless=args.headless):
            return 1
        session.run_forever()
        return 0
    except RuntimeError as e:
        logging.error(f"Session error: {e}")
        return 1
    finally:
        session.shutdown()


def cmd_get(args) -> int:
    try:
        values = _store(args).get(args.keys or None)
    except SettingsUnavailableError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(yaml.safe_dump(values, default_flow_style=False, sort_keys=True), end="")
    return 0


def cmd_set(args) -> int:
    try:
        values = _parse_pairs(args.pairs)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    changes = _store(args).set(values)
    for change in changes:
        print(f"{change.key}: {change.old_value!r} -> {change.new_value!r}")
    if not changes:
        print("No changes")
    return 0


def cmd_reset(args) -> int:
    changes = _store(args).reset()
    print(f"Reset {len(changes)} setting(s) to defaults")
    return 0


COMMANDS = {
    "run": cmd_run,
    "get": cmd_get,
    "set": cmd_set,
    "reset": cmd_reset,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    try:
        return COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nStopped")
        return 0


if __name__ == "__main__":
    sys.exit(main())
