"""
Command-line interface for Perception Tracker.

Usage:
    perception-tracker track detections.json --output tracks.json
    perception-tracker track detections.json --motion-model 3d --classes drone person
    perception-tracker config --show
    perception-tracker config --generate config.yaml
    perception-tracker config --validate config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import yaml

from . import __version__
from .config import (
    ASSIGNMENT_METHODS,
    MOTION_MODELS,
    ConfigurationError,
    PipelineConfig,
    get_default_config,
)
from .pipeline import run_pipeline

logger = logging.getLogger(__name__)


def _add_track_command(subparsers) -> None:
    track = subparsers.add_parser(
        "track",
        help="Replay a recorded detection log through the tracker",
    )
    track.add_argument("input", type=Path, help="Detection log (JSON)")
    track.add_argument(
        "-o", "--output",
        type=Path,
        default=Path("tracks.json"),
        help="Track export file (default: tracks.json)",
    )
    track.add_argument("-c", "--config", type=Path, help="Config YAML file")

    overrides = track.add_argument_group("tracker overrides")
    overrides.add_argument(
        "--motion-model",
        choices=MOTION_MODELS,
        help="Filter variant used for every track",
    )
    overrides.add_argument(
        "--assignment",
        choices=ASSIGNMENT_METHODS,
        help="Association resolution",
    )
    overrides.add_argument(
        "--max-frames-to-skip",
        type=int,
        metavar="N",
        help="Missed frames before a track is deleted",
    )
    overrides.add_argument(
        "--classes",
        nargs="+",
        metavar="NAME",
        help="Class names, indexed by detection class_id",
    )
    overrides.add_argument(
        "--dt",
        type=float,
        help="Time step in seconds for frames that carry none",
    )
    track.add_argument(
        "--no-progress",
        action="store_true",
        help="Hide the progress bar",
    )


def _add_config_command(subparsers) -> None:
    config = subparsers.add_parser("config", help="Configuration utilities")
    action = config.add_mutually_exclusive_group(required=True)
    action.add_argument(
        "--show",
        action="store_true",
        help="Print the default configuration",
    )
    action.add_argument(
        "--generate",
        type=Path,
        metavar="FILE",
        help="Write the default configuration to FILE",
    )
    action.add_argument(
        "--validate",
        type=Path,
        metavar="FILE",
        help="Load FILE and check that a tracker can be built from it",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="perception-tracker",
        description="Kalman-filter multi-object tracking of recorded detections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Track a detection log with the default planar model:
    perception-tracker track detections.json -o tracks.json

  Track depth-located detections of two classes:
    perception-tracker track detections.json --motion-model 3d --classes drone person

  Start from a config file:
    perception-tracker config --generate tracker.yaml
    perception-tracker track detections.json -c tracker.yaml
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    _add_track_command(subparsers)
    _add_config_command(subparsers)
    return parser


def setup_logging(verbosity: int) -> None:
    """Map -v flags to a root logging level."""
    levels = {0: logging.WARNING, 1: logging.INFO}
    logging.basicConfig(
        level=levels.get(verbosity, logging.DEBUG),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _apply_overrides(config: PipelineConfig, args: argparse.Namespace) -> None:
    tracker = config.tracker
    if args.motion_model is not None:
        tracker.motion_model = args.motion_model
    if args.assignment is not None:
        tracker.assignment = args.assignment
    if args.max_frames_to_skip is not None:
        tracker.max_frames_to_skip = args.max_frames_to_skip
    if args.dt is not None:
        tracker.dt = args.dt
    if args.classes:
        config.class_map = list(args.classes)


def cmd_track(args: argparse.Namespace) -> int:
    """Handle the track command."""
    if args.config is not None and not args.config.exists():
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        return 1
    if not args.input.exists():
        print(f"Error: Detection log not found: {args.input}", file=sys.stderr)
        return 1

    try:
        config = (PipelineConfig.from_yaml(args.config)
                  if args.config is not None else get_default_config())
        _apply_overrides(config, args)
        config.validate()

        results = run_pipeline(
            input_path=args.input,
            output_path=args.output,
            config=config,
            show_progress=not args.no_progress,
        )
    except ConfigurationError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError, TypeError) as e:
        logger.exception("Tracking failed")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    n_states = sum(r.num_tracks for r in results)
    print(f"Tracked {len(results)} frame(s), {n_states} track state(s)")
    print(f"Tracks saved to: {args.output}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the config command."""
    if args.show:
        config = get_default_config()
        print(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False))
        return 0

    if args.generate:
        get_default_config().to_yaml(args.generate)
        print(f"Generated config file: {args.generate}")
        return 0

    try:
        PipelineConfig.from_yaml(args.validate).validate()
    except (OSError, TypeError, yaml.YAMLError, ConfigurationError) as e:
        print(f"Error: {args.validate}: {e}", file=sys.stderr)
        return 1
    print(f"{args.validate}: OK")
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace], int]] = {
    "track": cmd_track,
    "config": cmd_config,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(args.verbose)
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
