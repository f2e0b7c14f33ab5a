import sys
import time
from typing import Any, TextIO
from datetime import timedelta
from .model import FileStatus
from .architecture import ProgressRenderer
from .config import ProgressDisplayConfig

GREEN = '\033[32m'
RED = '\033[31m'
RESET = '\033[0m'
CLEAR_LINE = '\033[K'
HIDE_CURSOR = '\033[?25l'
SHOW_CURSOR = '\033[?25h'


def truncate_path(path: str, max_length: int) -> str:
    # Keep the tail, the informative end of a path
    if len(path) <= max_length:
        return path
    return '...' + path[-(max_length - 3):]


def format_timedelta(td: timedelta) -> str:
    total_seconds = int(td.total_seconds())
    if total_seconds < 60:
        return f"{total_seconds}s"
    if total_seconds < 3600:
        return f"{total_seconds // 60}m{total_seconds % 60}s"
    return f"{total_seconds // 3600}h{(total_seconds % 3600) // 60}m"


class PlainTextProgressRenderer(ProgressRenderer):
    # Line-oriented output for logs and pipes; progress lines are throttled
    def __init__(self, update_interval_ms: int = 100, max_path_length: int = 60, stream: TextIO | None = None):
        self.interval = update_interval_ms / 1000
        self.max_path_length = max_path_length
        self.stream = stream
        self.total = 0
        self.started = 0.0
        self.last_update = 0.0
        self.completed = 0

    def _print(self, line: str) -> None:
        print(line, file=self.stream or sys.stdout, flush=True)

    def start(self, total: int) -> None:
        self.total = total
        self.started = time.monotonic()
        self.last_update = 0.0
        self.completed = 0
        self._print(f"Processing {total} files sequentially...")

    def update_progress(self, file: str, completed: int, total: int) -> None:
        self.completed = completed
        now = time.monotonic()
        if completed < total and self.last_update and now - self.last_update < self.interval:
            return
        self.last_update = now
        pct = completed * 100 // total if total else 100
        self._print(f"[{completed}/{total}] {pct}% - {truncate_path(file, self.max_path_length)}")

    def update_file_status(self, file: str, status: FileStatus) -> None:
        if status in (FileStatus.SUCCESS, FileStatus.ERROR):
            self._print(f"{status.name}: {truncate_path(file, self.max_path_length)}")

    def error(self, file: str, message: str) -> None:
        self._print(f"[ERR] {truncate_path(file, self.max_path_length)}: {message}")

    def complete(self) -> None:
        elapsed = timedelta(seconds=time.monotonic() - self.started)
        self._print(f"Analysis complete. Processed {self.completed} files in {format_timedelta(elapsed)}.")

    def cleanup(self) -> None:
        (self.stream or sys.stdout).flush()


class TerminalProgressRenderer(ProgressRenderer):
    # Single redrawn bar on stderr with optional ETA and throughput
    def __init__(self, show_eta: bool = True, show_throughput: bool = False, use_colors: bool = True,
                 update_interval_ms: int = 100, max_path_length: int = 60, stream: TextIO | None = None):
        self.show_eta = show_eta
        self.show_throughput = show_throughput
        self.use_colors = use_colors
        self.interval = update_interval_ms / 1000
        self.max_path_length = max_path_length
        self.stream = stream
        self.width = 30
        self.total = 0
        self.completed = 0
        self.failed = 0
        self.started = 0.0
        self.last_update = 0.0
        self.active = False  # a bar line is on screen
        self.cursor_hidden = False

    def _write(self, text: str) -> None:
        stream = self.stream or sys.stderr
        stream.write(text)
        stream.flush()

    def _color(self, text: str, color: str) -> str:
        return f"{color}{text}{RESET}" if self.use_colors else text

    def start(self, total: int) -> None:
        self.total = total
        self.completed = 0
        self.failed = 0
        self.started = time.monotonic()
        self.last_update = 0.0
        self._write(HIDE_CURSOR)
        self.cursor_hidden = True

    def _draw(self, file: str) -> None:
        total = self.total
        ratio = self.completed / total if total else 1.0
        filled = int(self.width * ratio)
        bar = '█' * filled + '░' * (self.width - filled)
        line = f"\r[{bar}] {ratio * 100:5.1f}% ({self.completed}/{total})"
        if self.failed:
            line += ' ' + self._color(f"{self.failed} failed", RED)

        elapsed = time.monotonic() - self.started
        rate = self.completed / elapsed if elapsed > 0 else 0.0
        if self.show_throughput and rate > 0:
            line += f" [{rate:.1f}/s]"
        if self.show_eta and rate > 0 and self.completed < total:
            line += f" ETA: {format_timedelta(timedelta(seconds=(total - self.completed) / rate))}"
        if file:
            line += f" | {truncate_path(file, self.max_path_length)}"
        self._write(line + CLEAR_LINE)
        self.active = True

    def update_progress(self, file: str, completed: int, total: int) -> None:
        self.completed = completed
        self.total = total
        now = time.monotonic()
        if completed < total and self.last_update and now - self.last_update < self.interval:
            return
        self.last_update = now
        self._draw(file)

    def update_file_status(self, file: str, status: FileStatus) -> None:
        if status == FileStatus.RUNNING:
            self._draw(file)
        elif status == FileStatus.ERROR:
            self.failed += 1

    def error(self, file: str, message: str) -> None:
        # Errors scroll above the bar
        prefix = '\r' + CLEAR_LINE if self.active else ''
        self._write(f"{prefix}{self._color('✗', RED)} {truncate_path(file, self.max_path_length)}: {message}\n")
        self.active = False

    def complete(self) -> None:
        self._draw('')
        elapsed = timedelta(seconds=time.monotonic() - self.started)
        done = self._color('✓', GREEN) if not self.failed else self._color('!', RED)
        self._write(f"\n{done} {self.completed} files in {format_timedelta(elapsed)}\n")
        self.active = False

    def cleanup(self) -> None:
        if self.active:
            self._write('\n')
            self.active = False
        if self.cursor_hidden:
            self._write(SHOW_CURSOR)
            self.cursor_hidden = False


def create_renderer(config: Any = None, isatty: bool | None = None, stream: TextIO | None = None) -> ProgressRenderer:
    # config: ProgressDisplayConfig (or anything with the same attributes); None uses defaults
    config = config or ProgressDisplayConfig()
    if isatty is None:
        isatty = sys.stderr.isatty()
    if isatty:
        return TerminalProgressRenderer(config.show_eta, config.show_throughput, config.use_colors,
                                        config.update_interval_ms, config.max_path_length, stream)
    return PlainTextProgressRenderer(config.update_interval_ms, config.max_path_length, stream)
