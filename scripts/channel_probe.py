#!/usr/bin/env python3
"""Passive MQTT probe for elevator channel traffic.

This script joins the elevator channels on the configured broker to:
1) print every current-level message as it arrives,
2) flag repeats of the same requestId (main + legacy double-emit),
3) optionally ask the authority for the current level of one network.

Use this to verify that an authority client is answering and that legacy
channels are still being fed.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyelevator._constants import LEGACY_CHANNELS, MAIN_CHANNEL  # noqa: E402
from pyelevator.channel import ChannelEvent, MqttChannel  # noqa: E402
from pyelevator.config import ElevatorConfig  # noqa: E402
from pyelevator.exceptions import ElevatorError, MessageValidationError  # noqa: E402
from pyelevator.models.messages import GetCurrentLevel, parse_level_message  # noqa: E402

_LOG = logging.getLogger("channel_probe")


@dataclass
class ProbeStats:
    started_at: float
    total_messages: int = 0
    invalid: int = 0
    repeats: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    seen_ids: set[str] = field(default_factory=set)
    last_message_at: float | None = None

    def on_message(self, now: float) -> float | None:
        previous = self.last_message_at
        self.total_messages += 1
        self.last_message_at = now
        return None if previous is None else now - previous


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Passive MQTT probe for elevator current-level channels.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--ask",
        metavar="NETWORK_ID",
        help="Publish a getCurrentLevel request for NETWORK_ID after connecting.",
    )
    parser.add_argument(
        "--main-only",
        action="store_true",
        help="Subscribe to the main channel only, ignoring legacy channels.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print inbound JSON payloads.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_summary(stats: ProbeStats) -> None:
    runtime = time.time() - stats.started_at
    print("[probe] Summary")
    print(f"[probe]   runtime_s      : {runtime:.1f}")
    print(f"[probe]   total_messages : {stats.total_messages}")
    print(f"[probe]   invalid        : {stats.invalid}")
    print(f"[probe]   repeats        : {stats.repeats}")
    for message_type, count in sorted(stats.by_type.items()):
        print(f"[probe]   {message_type:<15}: {count}")


def _report(event: ChannelEvent, stats: ProbeStats, *, pretty: bool) -> None:
    now = time.time()
    delta = stats.on_message(now)
    ts_text = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(now))
    gap_text = "first" if delta is None else f"{delta:.1f}s"
    print(f"[probe] msg#{stats.total_messages} at {ts_text} gap={gap_text} channel={event.channel}")
    print(json.dumps(event.payload, indent=2 if pretty else None, ensure_ascii=False, sort_keys=True))

    try:
        message = parse_level_message(event.payload, channel=event.channel)
    except MessageValidationError as exc:
        stats.invalid += 1
        print(f"[probe] invalid: {exc}")
        return

    stats.by_type[message.type] = stats.by_type.get(message.type, 0) + 1
    if message.request_id in stats.seen_ids:
        stats.repeats += 1
        print(f"[probe] repeat requestId={message.request_id}")
    else:
        stats.seen_ids.add(message.request_id)


async def _run(args: argparse.Namespace, config: ElevatorConfig, stats: ProbeStats) -> None:
    loop = asyncio.get_running_loop()
    channels = (MAIN_CHANNEL,) if args.main_only else (MAIN_CHANNEL, *LEGACY_CHANNELS.values())
    probe = MqttChannel(
        config,
        loop=loop,
        on_event=lambda event: _report(event, stats, pretty=args.json),
        client_id=f"elevator-probe-{int(stats.started_at)}",
        channels=channels,
        logger=_LOG,
    )

    print(f"[probe] Connecting to {config.mqtt_host}:{config.mqtt_port} prefix={config.mqtt_topic_prefix!r}")
    probe.start()
    try:
        if args.ask:
            # Give the broker a moment to acknowledge the subscriptions.
            await asyncio.sleep(1.0)
            request = GetCurrentLevel(network_id=args.ask, requester="probe")
            probe.publish(MAIN_CHANNEL, request.to_wire())
            print(f"[probe] Asked for current level network={args.ask} requestId={request.request_id}")

        if args.duration > 0:
            await asyncio.sleep(args.duration)
            print(f"[probe] Reached --duration={args.duration}s, stopping.")
        else:
            await asyncio.Event().wait()
    finally:
        probe.stop()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = ElevatorConfig.from_env()
    except ElevatorError as exc:
        print(f"[probe] Invalid configuration: {exc}", file=sys.stderr)
        return 2

    stats = ProbeStats(started_at=time.time())
    try:
        asyncio.run(_run(args, config, stats))
    except KeyboardInterrupt:
        pass
    except ElevatorError as exc:  # pragma: no cover - network/system interaction
        print(f"[probe] Probe failed: {exc}", file=sys.stderr)
        return 2

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
