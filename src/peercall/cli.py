"""Command-line voice call client.

Creates or joins a room on the signaling relay, streams the system
microphone to the peer and plays (or records) the peer's audio.

Usage:
    peercall create
    peercall join ab12cd3
    peercall join                # default room
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from peercall.call import CallController
from peercall.config import CallConfig, SignalingConfig
from peercall.state_machine import CallPhase, CallTrigger
from peercall.utils.logging import log_event, setup_logging

logger = logging.getLogger(__name__)


def build_remote_sink_factory(record_path: str | None):
    """Return a factory for the remote audio consumer.

    Records to ``record_path`` when given, otherwise discards the audio after
    decoding (aiortc has no portable speaker output).
    """
    from aiortc.contrib.media import MediaBlackhole, MediaRecorder

    if record_path:
        return lambda: MediaRecorder(record_path)
    return MediaBlackhole


class CallCLI:
    """Interactive wrapper around ``CallController``."""

    def __init__(self, controller: CallController, verbose: bool = False) -> None:
        self.controller = controller
        self.verbose = verbose
        self._stop = asyncio.Event()
        controller.add_phase_listener(self._on_phase_change)

    def _on_phase_change(self, old: CallPhase, new: CallPhase, trigger: CallTrigger) -> None:
        log_event("phase", {"from": old.value, "to": new.value, "trigger": trigger.value})

        if new is CallPhase.WAITING_FOR_PEER:
            print(f"\nRoom ready. Share this room id: {self.controller.room_token}")
            print("Waiting for friend to join...")
        elif new is CallPhase.NEGOTIATING:
            print("Connecting...")
        elif new is CallPhase.CONNECTED:
            print(f"In call with {self.controller.remote_participant_id}. Ctrl+C to hang up.")
        elif new in (CallPhase.IDLE, CallPhase.ERROR):
            if self.controller.error_message:
                print(f"\n{self.controller.error_message}")
            self._stop.set()

    async def run(self, mode: str, room: str | None) -> int:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._stop.set)
            except NotImplementedError:
                # Windows event loops
                pass

        if mode == "create":
            await self.controller.create_room()
        else:
            await self.controller.join_room(room)

        if self.controller.phase not in (CallPhase.IDLE, CallPhase.ERROR):
            await self._stop.wait()
            await self.controller.hang_up()

        logger.info("Call finished", extra=self.controller.get_metrics_summary())
        return 1 if self.controller.phase is CallPhase.ERROR else 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Peer-to-peer voice call client")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    parser.add_argument("--server", default=None, help="Signaling relay URL (ws:// or wss://)")
    parser.add_argument("--record", default=None, help="Record remote audio to this file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="mode", required=True)
    subparsers.add_parser("create", help="Create a new room and wait for a friend")
    join = subparsers.add_parser("join", help="Join an existing room")
    join.add_argument("room", nargs="?", default=None, help="Room id (default room if omitted)")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    config = CallConfig.from_yaml_with_defaults(args.config)
    if args.server:
        try:
            signaling = SignalingConfig(**{**config.signaling.model_dump(), "url": args.server})
        except ValidationError as e:
            print(f"Invalid --server: {e.errors()[0]['msg']}", file=sys.stderr)
            return 2
        config = config.model_copy(update={"signaling": signaling})

    setup_logging(config.log_level, verbose=args.verbose)

    async def _run() -> int:
        controller = CallController(
            config=config,
            remote_sink_factory=build_remote_sink_factory(args.record),
        )
        cli = CallCLI(controller, verbose=args.verbose)
        return await cli.run(args.mode, getattr(args, "room", None))

    try:
        return asyncio.run(_run())
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
