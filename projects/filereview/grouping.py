import os
import glob
import logging
from typing import Callable
from dataclasses import dataclass, field
from .architecture import FileProcessor
from .model import ProcessingResult, ProcessingResults
from .processor import ProcessingOptions, SequentialFileProcessor

logger = logging.getLogger(__name__)

GROUP_BY = ('directory', 'fileType', 'none')
NO_EXTENSION = 'no-extension'
ALL_FILES = 'all-files'


@dataclass(frozen=True)
class GroupSummary:
    total_files: int = 0
    successful_files: int = 0
    failed_files: int = 0
    warning_files: int = 0
    total_duration: float = 0.0
    average_duration: float = 0.0
    success_rate: float = 0.0
    error_rate: float = 0.0
    warning_rate: float = 0.0


def summarize(results: list[ProcessingResult]) -> GroupSummary:
    stats = SequentialFileProcessor.get_stats(results)
    if stats.total == 0:
        return GroupSummary()
    return GroupSummary(
        total_files=stats.total,
        successful_files=stats.successful,
        failed_files=stats.failed,
        warning_files=stats.warnings,
        total_duration=stats.total_duration,
        average_duration=stats.average_duration,
        success_rate=stats.success_rate,
        error_rate=stats.failed / stats.total,
        warning_rate=stats.warnings / stats.total,
    )


@dataclass
class GroupingOptions:
    group_by: str = 'fileType'  # 'directory' | 'fileType' | 'none'
    root: str | None = None  # directory keys are relative to root (cwd when None)
    max_depth: int | None = None  # glob expansion depth below root
    follow_symlinks: bool = False
    on_group_start: Callable[[str, int], None] | None = None
    on_group_complete: Callable[[str, GroupSummary], None] | None = None


@dataclass
class GroupResult:
    name: str
    files: list[str]
    results: ProcessingResults
    summary: GroupSummary


@dataclass
class GroupedResults:
    groups: list[GroupResult]
    overall_summary: GroupSummary
    total_groups: int  # groups in the partition, attempted or not
    results: ProcessingResults = field(default_factory=ProcessingResults)
    processing_mode: str = 'grouped'

    @property
    def stop_reason(self) -> str | None:
        return self.results.stop_reason


def run_groups(
    groups: list[tuple[str, list[str]]],
    processor: FileProcessor,
    options: ProcessingOptions | None = None,
    on_group_start: Callable[[str, int], None] | None = None,
    on_group_complete: Callable[[str, GroupSummary], None] | None = None,
) -> tuple[list[GroupResult], ProcessingResults]:
    # Run the sequential engine once per group, in group order.
    # The error budget spans all groups; an early stop in one group skips the rest.
    engine = SequentialFileProcessor()
    combined = ProcessingResults()
    group_results: list[GroupResult] = []
    errors = 0
    for name, files in groups:
        if on_group_start:
            on_group_start(name, len(files))
        results = engine.process_files(files, processor, options, errors_before=errors)
        errors += sum(1 for r in results if not r.success)
        summary = summarize(results)
        group_results.append(GroupResult(name, list(files), results, summary))
        combined.extend(results)
        if on_group_complete:
            on_group_complete(name, summary)
        if results.stop_reason is not None:
            combined.stop_reason = results.stop_reason
            logger.info("group %s: %s, %d groups left unprocessed", name, results.stop_reason, len(groups) - len(group_results))
            break
    return group_results, combined


class NestedFileProcessor:
    def expand_glob_pattern(self, pattern: str, root: str | None = None, follow_symlinks: bool = False, max_depth: int | None = None) -> list[str]:
        # Expand a (possibly recursive '**') pattern into sorted absolute file paths
        if not pattern or not pattern.strip():
            raise ValueError("Empty glob pattern")
        base = os.path.abspath(root or os.getcwd())
        try:
            matches = glob.glob(pattern, root_dir=base, recursive=True)
        except (OSError, ValueError) as e:
            raise ValueError(f"Failed to expand pattern {pattern}: {e}") from e

        files = []
        for match in matches:
            path = os.path.abspath(os.path.join(base, match))
            if not os.path.isfile(path):
                continue
            if not follow_symlinks and os.path.islink(path):
                continue
            if max_depth is not None and self._depth(path, base) > max_depth:
                continue
            files.append(path)
        return sorted(dict.fromkeys(files))

    def _depth(self, path: str, base: str) -> int:
        # Number of directories between base and the file
        rel = os.path.relpath(path, base)
        return len(rel.replace(os.sep, '/').split('/')) - 1

    def expand_patterns(self, patterns: list[str], root: str | None = None, follow_symlinks: bool = False, max_depth: int | None = None) -> list[str]:
        # Union of several expansions, each file once
        files: list[str] = []
        for pattern in patterns:
            files.extend(self.expand_glob_pattern(pattern, root, follow_symlinks, max_depth))
        return sorted(dict.fromkeys(files))

    @staticmethod
    def group_key(file: str, group_by: str, root: str | None = None) -> str:
        if group_by == 'directory':
            base = os.path.abspath(root or os.getcwd())
            directory = os.path.dirname(os.path.abspath(file))
            rel = os.path.relpath(directory, base).replace(os.sep, '/')
            return '.' if rel in ('', '.') else rel
        if group_by == 'fileType':
            _, ext = os.path.splitext(file)
            return ext[1:].lower() if len(ext) > 1 else NO_EXTENSION
        if group_by == 'none':
            return ALL_FILES
        raise ValueError(f"Unsupported group_by {group_by} {list(GROUP_BY)}")

    def group_files(self, files: list[str], group_by: str = 'fileType', root: str | None = None) -> dict[str, list[str]]:
        # Partition: keys in first-seen order, files in input order, duplicates dropped
        groups: dict[str, list[str]] = {}
        for file in dict.fromkeys(files):
            groups.setdefault(self.group_key(file, group_by, root), []).append(file)
        return groups

    def process_with_grouping(self, files: list[str], processor: FileProcessor, grouping: GroupingOptions | None = None, options: ProcessingOptions | None = None) -> GroupedResults:
        grouping = grouping or GroupingOptions()
        groups = self.group_files(files, grouping.group_by, grouping.root)
        logger.debug("%d files in %d %s groups", sum(len(g) for g in groups.values()), len(groups), grouping.group_by)
        group_results, results = run_groups(list(groups.items()), processor, options, grouping.on_group_start, grouping.on_group_complete)
        return GroupedResults(group_results, summarize(results), len(groups), results)

    def process_nested_pattern(self, pattern: str, processor: FileProcessor, grouping: GroupingOptions | None = None, options: ProcessingOptions | None = None) -> GroupedResults:
        grouping = grouping or GroupingOptions()
        files = self.expand_glob_pattern(pattern, grouping.root, grouping.follow_symlinks, grouping.max_depth)
        return self.process_with_grouping(files, processor, grouping, options)

    def process_multiple_patterns(self, patterns: list[str], processor: FileProcessor, grouping: GroupingOptions | None = None, options: ProcessingOptions | None = None) -> GroupedResults:
        grouping = grouping or GroupingOptions()
        files = self.expand_patterns(patterns, grouping.root, grouping.follow_symlinks, grouping.max_depth)
        return self.process_with_grouping(files, processor, grouping, options)

    @staticmethod
    def get_grouped_stats(grouped: GroupedResults) -> dict[str, object]:
        largest = max(grouped.groups, key=lambda g: len(g.files), default=None)
        weakest = min(grouped.groups, key=lambda g: g.summary.success_rate, default=None)
        return {
            'total_groups': grouped.total_groups,
            'processed_groups': len(grouped.groups),
            'total_files': grouped.overall_summary.total_files,
            'average_files_per_group': grouped.overall_summary.total_files / len(grouped.groups) if grouped.groups else 0.0,
            'largest_group': largest.name if largest else None,
            'lowest_success_group': weakest.name if weakest else None,
            'success_rate': grouped.overall_summary.success_rate,
        }
