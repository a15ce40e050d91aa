#!/usr/bin/env python3
"""
LUTWright CLI - 3D LUT color grading pipeline
Command-line host for watch mode, manual batches and LUT inspection.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from . import __version__
from .core.config import PipelineConfig
from .core.errors import ConfigError, LutwrightError
from .core.events import Event, EventChannel, EventType
from .core.types import DitherMode, WorkItem, WorkStatus
from .lut.lattice import LatticeTable, list_lut_files
from .orchestrator import Orchestrator
from .utils.config_file import ConfigFileManager, get_config_manager
from .utils.files import expand_image_paths
from .utils.logging import configure_from_cli, get_cli_args_parser, get_logger
from .watch import DirectoryWatcher


class Colors:
    """ANSI color codes for terminal output."""
    HEADER = '\033[95m'
    OKBLUE = '\033[94m'
    OKCYAN = '\033[96m'
    OKGREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


STATUS_COLORS = {
    WorkStatus.WAITING.value: Colors.OKCYAN,
    WorkStatus.PROCESSING.value: Colors.OKBLUE,
    WorkStatus.COMPLETED.value: Colors.OKGREEN,
    WorkStatus.FAILED.value: Colors.FAIL,
}


def print_colored(message: str, color: str = Colors.OKBLUE):
    """Print colored message to console."""
    print(f"{color}{message}{Colors.ENDC}")


def print_header():
    """Print CLI header."""
    print_colored(f"LUTWright v{__version__} - 3D LUT color pipeline", Colors.HEADER)


def fail(message: str, code: int = 1):
    """Print an error and exit."""
    print_colored(f"Error: {message}", Colors.FAIL)
    sys.exit(code)


# =============================================================================
# Configuration
# =============================================================================


def _cli_overrides(args) -> Dict[str, Any]:
    """CLI values that take precedence over config files."""
    return {
        'watch_dir': getattr(args, 'input_dir', None),
        'output_dir': getattr(args, 'output_dir', None),
        'lut_path': getattr(args, 'lut', None),
        'lut_dir': getattr(args, 'lut_dir', None),
        'strength': getattr(args, 'strength', None),
        'quality': getattr(args, 'quality', None),
        'dither': getattr(args, 'dither', None),
        'settle_delay': getattr(args, 'settle_delay', None),
        'max_concurrent_detections': getattr(args, 'max_concurrent', None),
        'process_timeout': getattr(args, 'timeout', None),
        'profile': getattr(args, 'profile', None),
    }


def load_pipeline_config(args) -> PipelineConfig:
    """Merge config files and CLI arguments into a run configuration."""
    manager = get_config_manager(getattr(args, 'config', None))
    return manager.to_pipeline_config(_cli_overrides(args))


def _print_status(event: Event) -> None:
    data = event.data
    status = data['status']
    line = f"  [{status:<10}] {data['id']}"
    if data.get('progress'):
        line += f" {data['progress'] * 100:5.1f}%"
    if 'errorReason' in data:
        line += f" - {data['errorReason']}"
    print_colored(line, STATUS_COLORS.get(status, Colors.ENDC))


def _print_queued(event: Event) -> None:
    print_colored(f"  [queued    ] {event.data['id']} {event.data['fileName']}", Colors.OKCYAN)


def _make_channel(quiet: bool) -> EventChannel:
    channel = EventChannel()
    if not quiet:
        channel.subscribe(EventType.ITEM_QUEUED, _print_queued)
        channel.subscribe(EventType.ITEM_STATUS, _print_status)
    return channel


def _print_parameters(config: PipelineConfig) -> None:
    params = config.run_parameters()
    print_colored(f"   LUT: {config.lut_path}", Colors.OKCYAN)
    print_colored(f"   Output folder: {config.output_dir}", Colors.OKCYAN)
    print_colored(
        f"   Strength {params.strength}, quality {params.quality}, dither {params.dither_mode.value}",
        Colors.OKCYAN,
    )


# =============================================================================
# Commands
# =============================================================================


def run_batch(args):
    """Process an explicit list of images (or directories of images)."""
    logger = get_logger("cli")
    config = load_pipeline_config(args)
    paths = expand_image_paths(args.files, config.file_patterns)
    if not paths:
        fail("No images to process")

    orchestrator = Orchestrator.create(config, channel=_make_channel(args.quiet))

    print_colored(f"\nProcessing {len(paths)} image(s)", Colors.BOLD)
    _print_parameters(config)
    print()

    results = asyncio.run(_run_batch(orchestrator, paths))
    print_summary(results)

    failed = [item for item in results if item.status is WorkStatus.FAILED]
    logger.info("Batch complete", total=len(results), failed=len(failed))
    if failed:
        sys.exit(1)


async def _run_batch(orchestrator: Orchestrator, paths: List[Path]) -> List[WorkItem]:
    results = await orchestrator.submit_batch(paths)
    await orchestrator.drain()
    return results


def print_summary(results: List[WorkItem]) -> None:
    """Print per-batch totals and the reasons of failed items."""
    completed = sum(1 for item in results if item.status is WorkStatus.COMPLETED)
    failed = [item for item in results if item.status is WorkStatus.FAILED]

    print()
    print_colored(f"Completed: {completed}/{len(results)}", Colors.OKGREEN if not failed else Colors.WARNING)
    for item in failed:
        print_colored(f"  x {item.file_name}: {item.error_reason}", Colors.FAIL)


def run_watch(args):
    """Watch a folder and grade every image that lands in it."""
    config = load_pipeline_config(args)
    orchestrator = Orchestrator.create(
        config,
        channel=_make_channel(args.quiet),
        require_watch_dir=True,
    )
    watcher = DirectoryWatcher(config.watch_dir, config.file_patterns)

    print_colored(f"\nWatching folder: {config.watch_dir}", Colors.OKBLUE)
    _print_parameters(config)
    print_colored("\nPress Ctrl+C to stop.\n", Colors.WARNING)

    try:
        asyncio.run(_watch_until_stopped(orchestrator, watcher))
    except KeyboardInterrupt:
        pass

    history = orchestrator.history()
    print_colored(f"\nWatch mode stopped. {len(history)} image(s) processed.", Colors.OKGREEN)


async def _watch_until_stopped(orchestrator: Orchestrator, watcher: DirectoryWatcher) -> None:
    try:
        await orchestrator.watch(watcher)
    finally:
        # Let images already picked up finish before exiting
        await orchestrator.drain()


def inspect_lut(args):
    """Parse a LUT and print its size, title and output range."""
    table = LatticeTable.load(args.lut)
    rows = table.rows()

    print_colored(f"\n{Path(args.lut).name}", Colors.BOLD)
    print(f"  Size:    {table.size} ({table.size ** 3} entries)")
    print(f"  Title:   {table.title or '-'}")
    print(f"  Min:     {', '.join(f'{v:.4f}' for v in rows.min(axis=0))}")
    print(f"  Max:     {', '.join(f'{v:.4f}' for v in rows.max(axis=0))}")

    identity = LatticeTable.identity(table.size)
    deviation = float(np.abs(table.data - identity.data).max())
    print(f"  Max deviation from identity: {deviation:.4f}")

    if args.sample:
        r, g, b = args.sample
        out = table.lookup(r, g, b)
        print(f"  lookup({r}, {g}, {b}) = ({out[0]:.4f}, {out[1]:.4f}, {out[2]:.4f})")


def list_luts(args):
    """List the .cube files in a directory."""
    directory = args.directory
    if directory is None:
        manager = get_config_manager(getattr(args, 'config', None))
        directory = manager.get('defaults.lut_dir')
    if not directory:
        fail("No LUT directory given and none configured (defaults.lut_dir)")

    directory = Path(directory).expanduser()
    if not directory.is_dir():
        fail(f"LUT directory not found: {directory}")

    names = list_lut_files(directory)
    if not names:
        print_colored(f"No .cube files in {directory}", Colors.WARNING)
        return
    for name in names:
        print(name)


def config_show(args):
    """Display current configuration."""
    manager = ConfigFileManager()
    if getattr(args, 'config', None):
        manager.project_config_path = Path(args.config)

    print_colored("\nConfiguration sources:", Colors.BOLD)
    for label, path in (("User config:", manager.user_config_path), ("Project config:", manager.project_config_path)):
        print(f"  {label:<16}{path} {'[exists]' if path.exists() else '[not found]'}")

    manager.load()
    errors = manager.get_validation_errors()
    if errors:
        print_colored("\nValidation warnings:", Colors.WARNING)
        for error in errors:
            print(f"  {error.path}: {error.message}")

    print_colored("\nCurrent configuration:\n", Colors.HEADER)
    print(manager.show_config(as_yaml=args.format == 'yaml'))

    profiles = manager.list_profiles()
    if profiles:
        print_colored("\nAvailable profiles:", Colors.OKCYAN)
        for profile in profiles:
            print(f"  - {profile}")


def config_init(args):
    """Initialize a new configuration file."""
    manager = ConfigFileManager()
    target = "project" if args.project else "user"
    try:
        config_path = manager.init_config(target=target)
    except OSError as e:
        fail(f"Error creating config file: {e}")
    print_colored(f"Created configuration file: {config_path}", Colors.OKGREEN)


# =============================================================================
# Parser
# =============================================================================


def _sample(value: str) -> List[float]:
    try:
        parts = [float(v) for v in value.split(',')]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected R,G,B floats, got {value!r}")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"expected three values, got {len(parts)}")
    return parts


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='lutwright',
        description='LUTWright - apply 3D LUTs to photos as they arrive or in batches',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Grade every photo copied into ./incoming
  lutwright watch --input-dir ./incoming --output-dir ./graded --lut film.cube

  # Grade a selection at 80% strength with error diffusion dithering
  lutwright batch IMG_0001.jpg IMG_0002.jpg --output-dir ./graded --lut film.cube --strength 80 --dither floyd

  # Check a LUT file
  lutwright inspect film.cube --sample 0.5,0.5,0.5
        """
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', type=str, default=None, help='Config file used in place of .lutwright.yaml')
    for flags, kwargs in get_cli_args_parser():
        parser.add_argument(*flags, **kwargs)

    # Options shared by watch and batch
    run_options = argparse.ArgumentParser(add_help=False)
    run_options.add_argument('--output-dir', '-o', type=str, help='Folder that receives graded images')
    run_options.add_argument('--lut', '-l', type=str, help='LUT file, or a name inside --lut-dir')
    run_options.add_argument('--lut-dir', type=str, help='Folder holding .cube files')
    run_options.add_argument('--strength', '-s', type=int, help='Blend strength 0-100 (default: 60)')
    run_options.add_argument('--quality', '-q', type=int, help='JPEG/WebP quality 1-100 (default: 90)')
    run_options.add_argument(
        '--dither', '-d', type=str.lower, choices=[m.value for m in DitherMode],
        help='Dithering before 8-bit output (default: none)',
    )
    run_options.add_argument('--profile', '-p', type=str, help='Named profile from the config file')
    run_options.add_argument('--timeout', type=float, help='Fail an image that takes longer than this many seconds')
    run_options.add_argument('--quiet', action='store_true', help='Do not print per-image status lines')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    watch_parser = subparsers.add_parser('watch', parents=[run_options], help='Grade images as they arrive in a folder')
    watch_parser.add_argument('--input-dir', '-i', type=str, help='Folder to watch')
    watch_parser.add_argument('--settle-delay', type=float, help='Seconds to wait before reading a new file (default: 1.0)')
    watch_parser.add_argument('--max-concurrent', type=int, help='Images processed at the same time (default: 2)')
    watch_parser.set_defaults(func=run_watch)

    batch_parser = subparsers.add_parser('batch', parents=[run_options], help='Grade a list of images one by one')
    batch_parser.add_argument('files', nargs='+', help='Images or folders of images')
    batch_parser.set_defaults(func=run_batch)

    inspect_parser = subparsers.add_parser('inspect', help='Show information about a LUT file')
    inspect_parser.add_argument('lut', type=str, help='LUT file')
    inspect_parser.add_argument('--sample', type=_sample, help='Look up one R,G,B color in [0, 1]')
    inspect_parser.set_defaults(func=inspect_lut)

    luts_parser = subparsers.add_parser('luts', help='List .cube files in a folder')
    luts_parser.add_argument('directory', nargs='?', default=None, help='Folder (default: defaults.lut_dir)')
    luts_parser.set_defaults(func=list_luts)

    config_parser = subparsers.add_parser('config', help='Show or create configuration files')
    config_sub = config_parser.add_subparsers(dest='config_action')
    show_parser = config_sub.add_parser('show', help='Display current configuration')
    show_parser.add_argument('--format', choices=['yaml', 'flat'], default='yaml')
    show_parser.set_defaults(func=config_show)
    init_parser = config_sub.add_parser('init', help='Create a default configuration file')
    init_parser.add_argument('--project', action='store_true', help='Create .lutwright.yaml here instead of the user file')
    init_parser.set_defaults(func=config_init)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_from_cli(
        log_level=getattr(args, 'log_level', 'INFO'),
        log_format=getattr(args, 'log_format', 'text'),
        log_file=getattr(args, 'log_file', None),
    )

    if not args.command or not hasattr(args, 'func'):
        print_header()
        parser.print_help()
        sys.exit(0)

    try:
        args.func(args)
    except ConfigError as e:
        fail(str(e.message))
    except LutwrightError as e:
        print_colored(e.format_for_user(), Colors.FAIL)
        sys.exit(1)
    except KeyboardInterrupt:
        print_colored("\n\nOperation cancelled by user", Colors.WARNING)
        sys.exit(1)


if __name__ == '__main__':
    main()
