"""
`livepatch` command line interface.

Commands
--------
livepatch apply FILE [FILE ...]              -- apply fragments in order
livepatch apply FILE --namespace app.models  -- apply under a namespace
livepatch apply FILE --no-live               -- record only, never redefine live
livepatch apply FILE --pending out/pending.py --original out/original.py
livepatch apply FILE --diff out/patch.diff --show-diff
livepatch watch DIR                          -- apply fragments as they change
livepatch watch DIR --export-dir .livepatch/exports
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from tqdm import tqdm

from .cli_display import print_status, setup_logger
from .config import Config
from .diff_display import show_diff
from .patching import Exporter, LivePatcher, ParseError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_RESTART_REQUIRED = 2


def _make_patcher(args: argparse.Namespace) -> LivePatcher:
    config = Config.load(args.config)
    patcher = LivePatcher(config)
    if args.no_live:
        patcher.disable_live_capability()
    return patcher


# ---------------------------------------------------------------------------
# Sub-command handlers
# ---------------------------------------------------------------------------

def _cmd_apply(args: argparse.Namespace) -> int:
    """Apply every fragment file, then export and report."""
    patcher = _make_patcher(args)

    files = args.files
    progress = tqdm(files, unit="file", desc="Patching", disable=len(files) < 2)
    for path in progress:
        try:
            with open(path, "r", encoding="utf-8") as f:
                source = f.read()
        except OSError as exc:
            print(f"Cannot read {path}: {exc}", file=sys.stderr)
            return EXIT_ERROR

        try:
            patcher.patch(source, args.namespace)
        except ParseError as exc:
            print(f"{path}: {exc}", file=sys.stderr)
            return EXIT_ERROR

    exporter = Exporter(patcher)
    try:
        if args.pending:
            exporter.write_merged_to(args.pending)
        if args.original:
            exporter.write_original_to(args.original)
        if args.diff:
            exporter.write_unified_diff(args.diff)
    except OSError as exc:
        print(f"Export failed: {exc}", file=sys.stderr)
        return EXIT_ERROR

    if args.show_diff:
        show_diff(exporter.unified_diff(), color=not args.no_color)

    print_status(patcher)

    if args.strict and patcher.needs_restart():
        return EXIT_RESTART_REQUIRED
    return EXIT_OK


def _cmd_watch(args: argparse.Namespace) -> int:
    """Watch a directory and apply fragments as they are written."""
    from .watcher import PatchWatcher

    patcher = _make_patcher(args)
    export_dir = args.export_dir
    if export_dir is None and args.export:
        export_dir = patcher.config.EXPORT_DIR
    watcher = PatchWatcher(patcher, args.directory,
                           namespace=args.namespace, export_dir=export_dir)
    print(f"Watching {args.directory} for patch fragments (Ctrl+C to stop)")
    watcher.start()
    print_status(patcher)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="livepatch",
        description="Apply source patches to classes and functions of a running process",
    )
    parser.add_argument("--config", default=None,
                        help="Path to a .livepatch.yaml config file")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Log debug output to stderr")
    parser.add_argument("--log-file", action="store_true",
                        help="Also write a debug log to the configured log_dir")

    subparsers = parser.add_subparsers(dest="command")

    # --- apply ---
    apply_p = subparsers.add_parser("apply", help="Apply patch fragment files in order")
    apply_p.add_argument("files", nargs="+", help="Patch fragment files")
    apply_p.add_argument("--namespace", default=None,
                         help="Namespace (module name) the fragments belong to")
    apply_p.add_argument("--no-live", action="store_true",
                         help="Never redefine anything live; only record")
    apply_p.add_argument("--pending", default=None,
                         help="Write the merged source to this path")
    apply_p.add_argument("--original", default=None,
                         help="Write the original source to this path")
    apply_p.add_argument("--diff", default=None,
                         help="Write a unified diff (original vs merged) to this path")
    apply_p.add_argument("--show-diff", action="store_true",
                         help="Print the unified diff")
    apply_p.add_argument("--no-color", action="store_true",
                         help="Do not colorize printed diffs")
    apply_p.add_argument("--strict", action="store_true",
                         help=f"Exit with code {EXIT_RESTART_REQUIRED} if a restart is required")
    apply_p.set_defaults(func=_cmd_apply)

    # --- watch ---
    watch_p = subparsers.add_parser("watch", help="Apply fragments written to a directory")
    watch_p.add_argument("directory", help="Directory to watch")
    watch_p.add_argument("--namespace", default=None,
                         help="Namespace (module name) the fragments belong to")
    watch_p.add_argument("--no-live", action="store_true",
                         help="Never redefine anything live; only record")
    watch_p.add_argument("--export", action="store_true",
                         help="Rewrite pending.py, original.py and patch.diff after each patch")
    watch_p.add_argument("--export-dir", default=None,
                         help="Export directory (default: export_dir from config)")
    watch_p.set_defaults(func=_cmd_watch)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the `livepatch` command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # Configure logging if not already configured
    if not logging.root.handlers:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(levelname)s  %(name)s  %(message)s",
        )
    if args.log_file:
        log_path = setup_logger(Config.load(args.config).LOG_DIR)
        logger.info("[LivePatch] Writing debug log to %s", log_path)

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_ERROR

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
