"""
Command line entry point for TreeCopy.

This module handles:
- Command line argument parsing
- Logging configuration
- Exception handling
- Applying one-off option overrides on top of stored settings
- Driving a SyncSession inside a Qt event loop
"""

from __future__ import annotations

import argparse
import faulthandler
import logging
import signal
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, List, TextIO

from PyQt6.QtCore import QCoreApplication, QObject, QTimer, pyqtSlot

from treecopy import __version__
from treecopy.core.folder.paths import PathMapper
from treecopy.core.models import OverwriteRule, SyncProgress, SyncResult
from treecopy.services.hashing import HashAlgorithm
from treecopy.services.settings import SettingsManager, SyncSettings
from treecopy.session import SyncSession
from treecopy.workers.scan_worker import ScanOutcome


# =============================================================================
# Constants
# =============================================================================

APP_NAME = "treecopy"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class CommandLineArgs:
    """Parsed command line arguments."""
    source: Optional[str] = None
    destination: Optional[str] = None
    overwrite_rule: Optional[OverwriteRule] = None
    include_hidden: Optional[bool] = None
    recursive: Optional[bool] = None
    preserve_attributes: Optional[bool] = None
    compare_by_hash: Optional[bool] = None
    hash_algorithm: Optional[str] = None
    save_settings: bool = False
    dry_run: bool = False
    list_tree: bool = False
    config_file: Optional[str] = None
    log_level: str = "WARNING"
    log_file: Optional[str] = None


# =============================================================================
# Logging Setup
# =============================================================================

class LogFormatter(logging.Formatter):
    """Custom log formatter with colors for console."""

    COLORS = {
        logging.INFO: '\033[32m',      # Green
        logging.WARNING: '\033[33m',   # Yellow
        logging.ERROR: '\033[31m',     # Red
        logging.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True, stream: Optional[TextIO] = None):
        super().__init__(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        stream = stream or sys.stderr
        self.use_colors = use_colors and hasattr(stream, 'isatty') and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)

        if self.use_colors:
            color = self.COLORS.get(record.levelno, '')
            return f"{color}{formatted}{self.RESET}"

        return formatted


def setup_logging(level: str = "WARNING", log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure application logging.

    Console output goes to stderr so it never mixes with the plan and
    progress lines on stdout.

    Args:
        level: Log level string
        log_file: Optional file path for logging

    Returns:
        Root logger instance
    """
    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(LogFormatter(use_colors=True, stream=sys.stderr))
    root_logger.addHandler(console_handler)

    # File handler
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(
            log_file,
            encoding='utf-8'
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(LogFormatter(use_colors=False))
        root_logger.addHandler(file_handler)

    return root_logger


# =============================================================================
# Exception Handling
# =============================================================================

class ExceptionHandler:
    """
    Global exception handler for unhandled exceptions.

    Logs the exception and stops the event loop with a failure code.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def handle_exception(
        self,
        exc_type: type,
        exc_value: BaseException,
        exc_tb
    ) -> None:
        """Handle an unhandled exception."""
        # Don't handle keyboard interrupt
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return

        self.logger.critical(
            "Unhandled exception",
            exc_info=(exc_type, exc_value, exc_tb)
        )

        app = QCoreApplication.instance()
        if app is not None:
            app.exit(EXIT_FAILED)


# =============================================================================
# Command Line Parsing
# =============================================================================

def parse_arguments(args: Optional[List[str]] = None) -> CommandLineArgs:
    """
    Parse command line arguments.

    Args:
        args: Arguments to parse (defaults to sys.argv)

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="One-way directory synchronization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s photos /mnt/backup/photos          Copy new and newer entries
  %(prog)s --dry-run photos /mnt/backup        Show what would be copied
  %(prog)s --rule always --hash src dst        Overwrite, comparing content
  %(prog)s                                     Reuse the last source and destination
        """
    )

    parser.add_argument(
        'source',
        nargs='?',
        help='Source directory'
    )
    parser.add_argument(
        'destination',
        nargs='?',
        help='Destination directory'
    )

    options = parser.add_argument_group('sync options')
    options.add_argument(
        '--rule',
        choices=[rule.value for rule in OverwriteRule],
        help='Overwrite rule for entries that exist in the destination'
    )
    options.add_argument(
        '--hidden',
        action='store_true',
        default=None,
        help='Include hidden files and directories'
    )
    options.add_argument(
        '--no-recursive',
        action='store_true',
        help='Only compare and copy the top level'
    )
    options.add_argument(
        '--no-preserve',
        action='store_true',
        help='Stamp copies with the current time instead of the source times'
    )
    options.add_argument(
        '--hash',
        action='store_true',
        default=None,
        help='Compare file content instead of modification dates'
    )
    options.add_argument(
        '--hash-algorithm',
        choices=[algorithm.label for algorithm in HashAlgorithm],
        help='Digest used with --hash'
    )
    options.add_argument(
        '--save-settings',
        action='store_true',
        help='Store the given options as the new defaults'
    )

    parser.add_argument(
        '-n', '--dry-run',
        action='store_true',
        help='Print the copy plan without copying'
    )
    parser.add_argument(
        '-l', '--list',
        action='store_true',
        dest='list_tree',
        help='Print the scanned tree with statuses and selection marks'
    )
    parser.add_argument(
        '--config',
        metavar='FILE',
        help='Use a specific settings file'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='WARNING',
        help='Set logging level (default: WARNING)'
    )
    parser.add_argument(
        '--log-file',
        metavar='FILE',
        help='Also write log records to FILE'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Shortcut for --log-level INFO'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parsed = parser.parse_args(args)

    log_level = parsed.log_level
    if parsed.verbose and log_level == 'WARNING':
        log_level = 'INFO'

    return CommandLineArgs(
        source=parsed.source,
        destination=parsed.destination,
        overwrite_rule=OverwriteRule.from_string(parsed.rule) if parsed.rule else None,
        include_hidden=parsed.hidden,
        recursive=False if parsed.no_recursive else None,
        preserve_attributes=False if parsed.no_preserve else None,
        compare_by_hash=parsed.hash,
        hash_algorithm=parsed.hash_algorithm,
        save_settings=parsed.save_settings,
        dry_run=parsed.dry_run,
        list_tree=parsed.list_tree,
        config_file=parsed.config,
        log_level=log_level,
        log_file=parsed.log_file,
    )


def apply_overrides(settings: SyncSettings, args: CommandLineArgs) -> SyncSettings:
    """Return ``settings`` with every option given on the command line applied."""
    changes = {
        'overwrite_rule': args.overwrite_rule,
        'copy_hidden_files': args.include_hidden,
        'recursive_scan': args.recursive,
        'preserve_attributes': args.preserve_attributes,
        'compare_by_hash': args.compare_by_hash,
        'hash_algorithm': args.hash_algorithm,
    }
    return replace(settings, **{k: v for k, v in changes.items() if v is not None})


# =============================================================================
# Formatting
# =============================================================================

def format_size(size: float) -> str:
    """Format a byte count."""
    if size < 1024:
        return f"{size:.0f} B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    elif size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    else:
        return f"{size / (1024 * 1024 * 1024):.2f} GB"


def format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_progress(progress: SyncProgress) -> str:
    """One progress line: count, bytes, rate and ETA once they are known."""
    line = (f"[{progress.percent:5.1f}%] {progress.items_completed}/{progress.total_items} "
            f"{format_size(progress.bytes_copied)}/{format_size(progress.total_bytes)}")
    if progress.bytes_per_second is not None:
        line += f" {format_size(progress.bytes_per_second)}/s"
    if progress.eta_seconds is not None:
        line += f" ETA {format_duration(progress.eta_seconds)}"
    return f"{line}  {progress.current_item}"


# =============================================================================
# Run Driver
# =============================================================================

class CommandLineRun(QObject):
    """
    Drives one scan (and, unless dry-running, one copy) through a session
    and reports to a text stream. Stops the event loop when done.
    """

    def __init__(
        self,
        session: SyncSession,
        args: CommandLineArgs,
        out: Optional[TextIO] = None,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)
        self.session = session
        self.args = args
        self.out = out or sys.stdout
        self.exit_code = EXIT_OK

        session.scan_finished.connect(self._on_scan_finished)
        session.progress_changed.connect(self._on_progress)
        session.copy_finished.connect(self._on_copy_finished)
        session.worker_failed.connect(self._on_worker_failed)

    def start(self, source: Path, dest: Path) -> None:
        if not self.session.set_roots(source, dest):
            self._finish(EXIT_USAGE)

    def print_tree(self) -> None:
        self.session.expanded.clear()
        self.session.toggle_expand_all()
        for row in self.session.visible_rows():
            status = self.session.status_of(row.node)
            mark = 'x' if self.session.is_selected(row.node) else ' '
            symbol = status.symbol if status else ' '
            suffix = '/' if row.node.is_directory else ''
            self.out.write(f"[{mark}] {symbol} {'  ' * row.depth}{row.node.name}{suffix}\n")

    def print_plan(self) -> None:
        mapper = PathMapper(self.session.source_root, self.session.dest_root)
        plan = self.session.plan()
        for item in plan:
            self.out.write(f"{item.status.value:<7} {mapper.relative(item.node.path)}\n")
        total = sum(item.size for item in plan)
        self.out.write(f"{len(plan)} items, {format_size(total)}\n")

    def print_errors(self) -> None:
        for entry in self.session.error_log:
            self.out.write(f"{entry}\n")

    @pyqtSlot(object)
    def _on_scan_finished(self, outcome: ScanOutcome) -> None:
        if self.args.list_tree:
            self.print_tree()

        if self.args.dry_run:
            self.print_plan()
            self._finish(EXIT_OK)
            return

        if not self.session.execute():
            self._finish(EXIT_FAILED)

    @pyqtSlot(object)
    def _on_progress(self, progress: SyncProgress) -> None:
        self.out.write(format_progress(progress) + "\n")

    @pyqtSlot(object)
    def _on_copy_finished(self, result: SyncResult) -> None:
        self.out.write(f"{result.summary()} ({format_size(result.bytes_copied)} "
                       f"in {format_duration(result.duration)})\n")
        self.out.write(f"Destination now holds {result.dest_item_count} items\n")
        self.print_errors()
        self._finish(EXIT_OK if result.success else EXIT_FAILED)

    @pyqtSlot(str, str)
    def _on_worker_failed(self, error_type: str, message: str) -> None:
        self.out.write(f"{error_type}: {message}\n")
        self._finish(EXIT_FAILED)

    def _finish(self, code: int) -> None:
        self.exit_code = code
        app = QCoreApplication.instance()
        if app is not None:
            app.exit(code)


# =============================================================================
# Signal Handlers
# =============================================================================

def setup_signal_handlers() -> QTimer:
    """
    Let Ctrl+C stop the event loop.

    The returned timer must be kept alive; it gives the interpreter a chance
    to run Python signal handlers while Qt owns the main loop.
    """
    signal.signal(signal.SIGINT, _signal_handler)
    if sys.platform != 'win32':
        signal.signal(signal.SIGTERM, _signal_handler)

    timer = QTimer()
    timer.timeout.connect(lambda: None)
    timer.start(500)
    return timer


def _signal_handler(signum, frame) -> None:
    """Handle Unix signals."""
    logging.info(f"Received signal {signum}, shutting down...")
    QCoreApplication.exit(EXIT_FAILED)


# =============================================================================
# Main Function
# =============================================================================

def resolve_roots(
    args: CommandLineArgs,
    settings_manager: SettingsManager
) -> tuple[Optional[Path], Optional[Path], Optional[str]]:
    """
    Pick the roots for this run from the arguments or the stored paths.

    Returns (source, destination, error message).
    """
    if args.source:
        source = Path(args.source).expanduser()
        if not source.is_dir():
            return None, None, f"Source is not a directory: {args.source}"
    else:
        source = settings_manager.last_source()
        if source is None:
            return None, None, "No source directory given"

    if args.destination:
        dest = Path(args.destination).expanduser()
    else:
        dest = settings_manager.last_dest()
        if dest is None:
            return source, None, f"Destination required for {source}"

    if dest.exists() and not dest.is_dir():
        return source, None, f"Destination is not a directory: {dest}"

    return source, dest, None


def main(argv: Optional[List[str]] = None) -> int:
    """
    Application main entry point.

    Returns:
        Exit code (0 success, 1 failed items, 2 usage error)
    """
    # Native crash tracebacks; the original stream always has a file descriptor
    if sys.__stderr__ is not None:
        faulthandler.enable(sys.__stderr__)

    args = parse_arguments(argv)

    log_file = Path(args.log_file) if args.log_file else None
    logger = setup_logging(args.log_level, log_file)
    logger.info(f"Starting {APP_NAME} v{__version__}")

    exception_handler = ExceptionHandler(logger)
    sys.excepthook = exception_handler.handle_exception

    settings_manager = SettingsManager(Path(args.config_file) if args.config_file else None)
    sync_settings = apply_overrides(settings_manager.settings.sync, args)
    if args.save_settings:
        settings_manager.update_sync(**vars(sync_settings))

    source, dest, error = resolve_roots(args, settings_manager)
    if error:
        sys.stderr.write(f"{APP_NAME}: {error}\n")
        return EXIT_USAGE

    app = QCoreApplication.instance() or QCoreApplication([APP_NAME])
    interrupt_timer = setup_signal_handlers()

    session = SyncSession(settings_manager, sync_settings=sync_settings)
    run = CommandLineRun(session, args)
    QTimer.singleShot(0, lambda: run.start(source, dest))

    try:
        exit_code = app.exec()
    finally:
        interrupt_timer.stop()
        session.shutdown()

    logger.info(f"{APP_NAME} exiting with code {exit_code}")
    return exit_code


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == '__main__':
    sys.exit(main())
