"""
Stage Player CLI - Command-line interface for presentation playback.

Entry point:
    stage-player  - list, dry-run, play and serve presentations
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Any, Dict, List, Optional

from .audio import simulated_audio_factory
from .broadcast import SnapshotBroadcaster
from .clock import AsyncioScheduler, ManualScheduler, Scheduler
from .config import PlayerSettings
from .logging_config import configure_logging
from .player import PlaybackSnapshot, WebPlayer
from .storage import PresentationStorage, create_demo_presentation

logger = logging.getLogger('cli')

# Virtual runs stop after one simulated day
CUE_SHEET_LIMIT_MS = 24 * 60 * 60 * 1000


def validate_port(value: str) -> int:
    """Validate port number is in valid range."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid port number: {value}")

    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"Port must be between 1 and 65535, got: {port}")
    return port


def validate_non_negative(value: str) -> float:
    """Validate a non-negative number."""
    try:
        num = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number: {value}")

    if num < 0:
        raise argparse.ArgumentTypeError(f"Value must not be negative, got: {num}")
    return num


class TransitionLog:
    """Snapshot listener that records one line per visible transition."""

    def __init__(self, scheduler: Scheduler, echo: bool = False):
        self._scheduler = scheduler
        self._echo = echo
        self._last = None
        self._start_ms = scheduler.now_ms()
        self.lines: List[str] = []
        self.finished = False

    def __call__(self, snapshot: PlaybackSnapshot):
        key = (snapshot.state, snapshot.active_actor_id, snapshot.active_s_actor_id)
        if key == self._last:
            return
        self._last = key

        actor = snapshot.active_actor
        actor_text = f"{actor.id}:{actor.kind.value}" if actor else "-"
        speech_text = "-" if snapshot.active_s_actor_id is None else str(snapshot.active_s_actor_id)
        elapsed = (self._scheduler.now_ms() - self._start_ms) / 1000
        line = f"{elapsed:9.3f}s  {snapshot.state.value:<8}  actor={actor_text:<10}  speech={speech_text}"
        self.lines.append(line)
        if self._echo:
            print(line, flush=True)
        if snapshot.finished_playback:
            self.finished = True


def load_presentation(source: str, storage_dir: str) -> Optional[Dict[str, Any]]:
    """Load a presentation from a file path, or by name from storage."""
    storage = PresentationStorage(storage_dir)
    if os.path.isfile(source):
        return storage.load_file(source)
    return storage.load(source)


def run_cue_sheet(config: Dict[str, Any], settings: PlayerSettings) -> Optional[List[str]]:
    """
    Play a presentation on virtual time with simulated audio.

    Returns:
        One line per transition, or None if the configuration was rejected
    """
    scheduler = ManualScheduler()
    player = WebPlayer(scheduler, settings=settings, audio_factory=simulated_audio_factory(scheduler))
    log = TransitionLog(scheduler)
    player.subscribe(log)

    if not player.parse_config(config):
        return None

    player.toggle_player_state()
    scheduler.run_until_idle(limit_ms=CUE_SHEET_LIMIT_MS)
    player.close()
    return log.lines


async def run_realtime(
    config: Dict[str, Any],
    settings: PlayerSettings,
    pause_at: Optional[float] = None,
    pause_for: float = 0.0,
    serve: bool = False,
) -> int:
    """Play a presentation in real time until it finishes (or forever when serving)."""
    loop = asyncio.get_running_loop()
    scheduler = AsyncioScheduler(loop)
    player = WebPlayer(scheduler, settings=settings, audio_factory=simulated_audio_factory(scheduler))
    done = asyncio.Event()

    def _stop_when_finished(snapshot: PlaybackSnapshot):
        if snapshot.finished_playback and not serve:
            done.set()

    player.subscribe(TransitionLog(scheduler, echo=True))
    player.subscribe(_stop_when_finished)

    if not player.parse_config(config):
        return 1

    broadcaster = None
    if serve:
        broadcaster = SnapshotBroadcaster(player, settings.broadcast_host, settings.broadcast_port)
        await broadcaster.start()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, done.set)
        except (NotImplementedError, RuntimeError):
            pass  # Windows

    player.toggle_player_state()
    if pause_at is not None:
        loop.call_later(pause_at, player.toggle_player_state)
        loop.call_later(pause_at + pause_for, player.toggle_player_state)

    try:
        await done.wait()
    finally:
        if broadcaster is not None:
            await broadcaster.stop()
        player.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stage-player",
        description="Stage Player - timed presentation sequencer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stage-player demo                         # Store a demo presentation
  stage-player list                         # List stored presentations
  stage-player cue-sheet demo               # Dry run on virtual time
  stage-player play talk.json --pause-at 5 --pause-for 2
  stage-player serve talk.json              # Stream snapshots over WebSocket
        """,
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("STAGE_PLAYER_LOG_LEVEL", "WARNING"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: WARNING or $STAGE_PLAYER_LOG_LEVEL)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Structured JSON logs (default: on when STAGE_PLAYER_ENV is production)",
    )
    parser.add_argument(
        "--storage-dir",
        default=None,
        help="Presentation directory (default: $STAGE_PLAYER_PRESENTATIONS_DIR or presentations/)",
    )
    parser.add_argument(
        "--buffer-ms",
        type=validate_non_negative,
        default=None,
        help="Cross-fade buffer added to every segment, in ms",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List stored presentations")
    sub.add_parser("demo", help="Store a demo presentation")

    cue = sub.add_parser("cue-sheet", help="Print every transition of a virtual run")
    cue.add_argument("presentation", help="JSON file or stored presentation name")

    play = sub.add_parser("play", help="Play a presentation in real time")
    play.add_argument("presentation", help="JSON file or stored presentation name")
    play.add_argument("--pause-at", type=validate_non_negative, default=None,
                      help="Pause after this many seconds")
    play.add_argument("--pause-for", type=validate_non_negative, default=2.0,
                      help="Seconds to stay paused (default: 2)")

    serve = sub.add_parser("serve", help="Play and stream snapshots to rendering clients")
    serve.add_argument("presentation", help="JSON file or stored presentation name")
    serve.add_argument("--host", default=None, help="Bind address (default: settings)")
    serve.add_argument("--port", "-p", type=validate_port, default=None, help="Port (default: settings)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json_logs=args.json_logs or None, stream=sys.stderr)

    overrides: Dict[str, Any] = {}
    if args.buffer_ms is not None:
        overrides["crossfade_buffer_ms"] = int(args.buffer_ms)
    if args.storage_dir:
        overrides["presentations_dir"] = args.storage_dir
    if getattr(args, "host", None):
        overrides["broadcast_host"] = args.host
    if getattr(args, "port", None):
        overrides["broadcast_port"] = args.port
    settings = PlayerSettings(**overrides)

    if args.command == "list":
        presentations = PresentationStorage(settings.presentations_dir).list_presentations()
        if not presentations:
            print("No presentations stored")
        for p in presentations:
            print(f"{p['name']:<30} {p['actors']:>3} actors  {p['speech']:>3} speech  {p['filepath']}")
        return 0

    if args.command == "demo":
        path = PresentationStorage(settings.presentations_dir).save("demo", create_demo_presentation())
        print(f"Demo presentation written to {path}")
        return 0

    config = load_presentation(args.presentation, settings.presentations_dir)
    if config is None:
        print(f"Could not load presentation: {args.presentation}", file=sys.stderr)
        return 1

    if args.command == "cue-sheet":
        lines = run_cue_sheet(config, settings)
        if lines is None:
            print("Presentation rejected, see log", file=sys.stderr)
            return 1
        print("\n".join(lines))
        return 0

    try:
        return asyncio.run(run_realtime(
            config,
            settings,
            pause_at=getattr(args, "pause_at", None),
            pause_for=getattr(args, "pause_for", 0.0),
            serve=args.command == "serve",
        ))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
