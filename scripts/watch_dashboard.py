#!/usr/bin/env python3
"""Run the dashboard runtime headless and print what modules would see.

Configuration comes from ``SMARTFARM_*`` environment variables. Every
dispatched snapshot and every history backfill is printed, so this is a
quick way to check a database and a module package set end to end.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from smartfarm import FarmRuntime, RuntimeConfig  # noqa: E402
from smartfarm.exceptions import SmartFarmError  # noqa: E402
from smartfarm.models.telemetry import TelemetrySnapshot  # noqa: E402
from smartfarm.state.store import GlobalState  # noqa: E402

_LOG = logging.getLogger("watch_dashboard")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Watch smart-farm telemetry through the dashboard runtime.",
    )
    parser.add_argument(
        "--module",
        default=None,
        help="Module to load first (default: SMARTFARM_INITIAL_MODULE or 'home').",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--modules-dir",
        default=None,
        help="Read module packages from this directory instead of SMARTFARM_MODULES_URL.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print snapshot payloads.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


async def _watch(args: argparse.Namespace) -> None:
    overrides: dict[str, Any] = {}
    if args.modules_dir:
        overrides["modules_dir"] = args.modules_dir
    config = RuntimeConfig.from_env(**overrides)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    seen = 0

    def on_snapshot(snapshot: TelemetrySnapshot) -> None:
        nonlocal seen
        seen += 1
        if args.json:
            print(json.dumps(snapshot.as_dict(), indent=2, ensure_ascii=False, sort_keys=True))
        else:
            print(f"[watch] snapshot {runtime.active_module}: {snapshot.as_dict()}")

    def on_history(channel_id: str, state: GlobalState) -> None:
        buffer = state.get_history(channel_id)
        print(f"[watch] history {channel_id}: {len(buffer) if buffer is not None else 0} points")

    def on_render(content: str, is_error: bool) -> None:
        status = "error" if is_error else "ok"
        print(f"[watch] rendered {runtime.active_module} ({status}, {len(content)} chars)")

    async with FarmRuntime(config) as runtime:
        runtime.router.subscribe(on_snapshot)
        runtime.bridge.add_history_listener(on_history)
        runtime.display.add_listener(on_render)

        await runtime.start(args.module)
        print(f"[watch] Watching {config.sensors_path}. Press Ctrl+C to stop.")

        if args.duration > 0:
            try:
                await asyncio.wait_for(stop.wait(), timeout=args.duration)
            except TimeoutError:
                pass
        else:
            await stop.wait()

        print(f"[watch] Snapshots received: {seen}")


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(_watch(args))
    except SmartFarmError as exc:
        print(f"[watch] {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
