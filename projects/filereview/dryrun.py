import os
import logging
from dataclasses import dataclass, field
from .ordering import order_files
from .grouping import NestedFileProcessor

logger = logging.getLogger(__name__)

MIN_ESTIMATE_MS = 500


@dataclass(frozen=True)
class FileDetails:
    path: str
    exists: bool
    readable: bool
    size: int = 0
    modified: float | None = None
    estimated_ms: int = 0
    reason: str | None = None  # why the file will be skipped

    @property
    def accessible(self) -> bool:
        return self.reason is None


@dataclass
class DryRunOptions:
    base_estimate_ms: int = 500
    per_kb_ms: int = 250
    file_ordering: str = 'alphabetical'
    root: str | None = None


@dataclass
class AnalysisPlan:
    total_files: int  # files that would be processed
    skipped_files: list[str]
    estimated_duration_ms: int
    processing_order: list[str] = field(default_factory=list)
    file_details: list[FileDetails] = field(default_factory=list)
    files_by_directory: dict[str, list[str]] = field(default_factory=dict)
    total_size: int = 0

    @property
    def average_file_size(self) -> float:
        return self.total_size / self.total_files if self.total_files else 0.0

    @property
    def directory_count(self) -> int:
        return len(self.files_by_directory)


class DryRunAnalyzer:
    def __init__(self, options: DryRunOptions | None = None):
        self.options = options or DryRunOptions()

    def check_file(self, path: str) -> FileDetails:
        # Never raises: inaccessible files come back with a reason
        try:
            st = os.stat(path)
        except FileNotFoundError:
            return FileDetails(path, False, False, reason='file not found')
        except OSError as e:
            return FileDetails(path, False, False, reason=f"cannot stat: {e.strerror or e}")
        except ValueError as e:  # e.g. embedded NUL byte
            return FileDetails(path, False, False, reason=f"invalid path: {e}")
        if not os.path.isfile(path):
            return FileDetails(path, True, False, reason='not a regular file')
        if not os.access(path, os.R_OK):
            return FileDetails(path, True, False, st.st_size, st.st_mtime, reason='permission denied')
        estimate = max(MIN_ESTIMATE_MS, self.options.base_estimate_ms + self.options.per_kb_ms * (st.st_size >> 10))
        return FileDetails(path, True, True, st.st_size, st.st_mtime, estimate)

    def validate_files(self, files: list[str]) -> tuple[list[str], list[tuple[str, str]]]:
        valid: list[str] = []
        invalid: list[tuple[str, str]] = []
        for file in dict.fromkeys(files):
            details = self.check_file(file)
            if details.accessible:
                valid.append(file)
            else:
                invalid.append((file, details.reason or 'inaccessible'))
        return valid, invalid

    def create_analysis_plan(self, files: list[str]) -> AnalysisPlan:
        # Never invokes a FileProcessor
        details = [self.check_file(file) for file in dict.fromkeys(files)]
        accessible = [d for d in details if d.accessible]
        skipped = [d.path for d in details if not d.accessible]
        for d in details:
            if not d.accessible:
                logger.debug("skipping %s: %s", d.path, d.reason)

        order = order_files([d.path for d in accessible], self.options.file_ordering)
        by_directory = NestedFileProcessor().group_files(order, 'directory', self.options.root)
        return AnalysisPlan(
            total_files=len(accessible),
            skipped_files=skipped,
            estimated_duration_ms=sum(d.estimated_ms for d in accessible),
            processing_order=order,
            file_details=details,
            files_by_directory=by_directory,
            total_size=sum(d.size for d in accessible),
        )


def _format_ms(ms: int) -> str:
    seconds = ms // 1000
    if seconds < 60:
        return f"{ms / 1000:.1f}s"
    if seconds < 3600:
        return f"{seconds // 60}m{seconds % 60}s"
    return f"{seconds // 3600}h{(seconds % 3600) // 60}m"


def render_plan(plan: AnalysisPlan) -> list[str]:
    lines = [
        "Dry run: no files will be analyzed",
        f"Files to process: {plan.total_files}",
        f"Skipped files: {len(plan.skipped_files)}",
        f"Directories: {plan.directory_count}",
        f"Total size: {plan.total_size} bytes (average {plan.average_file_size:.0f})",
        f"Estimated duration: {_format_ms(plan.estimated_duration_ms)}",
    ]
    for directory, members in plan.files_by_directory.items():
        lines.append(f"  {directory}/ ({len(members)})")
        lines.extend(f"    {os.path.basename(f)}" for f in members)
    reasons = {d.path: d.reason for d in plan.file_details if not d.accessible}
    for path in plan.skipped_files:
        lines.append(f"[WARNING] skip {path}: {reasons.get(path)}")
    return lines
