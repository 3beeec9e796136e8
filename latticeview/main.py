"""CLI entry point for LatticeView.

Drives a frame source once per tick and shows the result, either in the
3D viewer or as a status line per frame on stdout.
"""

import argparse
import logging
import sys
import time

from latticeview.config import init_taichi
from latticeview.core.errors import LatticeViewError
from latticeview.diagnostics import frame_stats
from latticeview.fields.store import LatticeFieldStore
from latticeview.logging_config import setup_logging
from latticeview.params import ValidationError, ViewerConfig, load_config
from latticeview.sources import CombinedSource, FrameSource, NetworkedSource, PlaybackSource

logger = logging.getLogger(__name__)


def parse_seed(text: str) -> tuple[float, float, float]:
    """Parse 'x,y,z' into a position tuple."""
    parts = text.split(",")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"seed must be 'x,y,z', got '{text}'")
    try:
        return tuple(float(p) for p in parts)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"seed must be numeric, got '{text}'") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="LatticeView lattice fluid viewer")
    parser.add_argument("--config", type=str, help="Path to YAML configuration file")
    parser.add_argument(
        "--mode",
        choices=["network", "combined", "playback"],
        default="network",
        help="Frame source: split streams, combined stream or recorded file",
    )
    parser.add_argument("--file", type=str, help="Playback file (required for --mode playback)")
    parser.add_argument("--gui", action="store_true", help="Enable 3D visualization")
    parser.add_argument("--ticks", type=int, help="Stop after this many ticks (default: run until closed)")
    parser.add_argument("--seed", type=parse_seed, help="Print a streamline traced from 'x,y,z' at exit")
    parser.add_argument("--steps", type=int, help="Streamline step count. Overrides config.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser


def create_source(args: argparse.Namespace, config: ViewerConfig, store: LatticeFieldStore) -> FrameSource:
    """Build the frame source selected on the command line."""
    if args.mode == "playback":
        return PlaybackSource(args.file, store=store, loop=config.display.loop_playback)
    if args.mode == "combined":
        return CombinedSource(store=store, stream=config.stream, channel=config.channel)
    return NetworkedSource(store=store, stream=config.stream, channel=config.channel)


def run(args: argparse.Namespace, config: ViewerConfig) -> int:
    """Tick loop. Returns the process exit code."""
    store = LatticeFieldStore()
    source = create_source(args, config, store)

    vis = None
    if args.gui:
        from latticeview.gui import Visualizer3D

        vis = Visualizer3D(display=config.display, streamline=config.streamline)

    print(f"Starting {source.name}...")
    if args.mode != "playback":
        logger.info(
            "Each poll blocks at most %.3fs (ports: %s)",
            config.channel.max_poll_seconds,
            config.stream.combined_port
            if args.mode == "combined"
            else f"{config.stream.velocity_port}/{config.stream.density_port}",
        )
    source.init()
    source.load()

    interval = config.display.playback_interval if args.mode == "playback" else 0.0
    ticks = 0
    start_time = time.time()
    try:
        while args.ticks is None or ticks < args.ticks:
            if vis is not None and not vis.is_running:
                break
            if source.update() and vis is None:
                print(frame_stats(store).format())
            if vis is not None:
                vis.update(store)
                vis.render()
            ticks += 1
            if interval and vis is None:
                time.sleep(interval)
    except KeyboardInterrupt:
        print("\nViewer stopped by user.")
    finally:
        source.close()

    duration = time.time() - start_time
    print(f"Ran {ticks} ticks in {duration:.2f}s, last frame {store.frame_id}")

    if args.seed is not None:
        line = store.compute_streamline(args.seed, config.streamline.step_count)
        print(f"Streamline from {args.seed}: {len(line)} points")
        for point in line:
            print(f"  {point[0]:.4f} {point[1]:.4f} {point[2]:.4f}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.mode == "playback" and not args.file:
        parser.error("--mode playback requires --file")

    setup_logging(getattr(logging, args.log_level))

    try:
        config = load_config(args.config) if args.config else ViewerConfig()
        if args.steps is not None:
            config = config.with_updates(streamline={"step_count": args.steps})
    except (FileNotFoundError, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.config:
        print(f"Loaded config from {args.config}")

    init_taichi(config.runtime, gui=args.gui)

    try:
        return run(args, config)
    except (FileNotFoundError, LatticeViewError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
