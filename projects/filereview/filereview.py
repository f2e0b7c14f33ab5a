import os
import logging
import threading
from git import Repo
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor
from .index import FileReview
from .architecture import FileProcessor, ProgressRenderer
from .config import SequentialProcessingConfig
from .model import ProcessingMode, ProcessingResults, ReviewCommand, ReviewRun
from .selector import ProcessingModeSelector
from .processor import ProcessingOptions, SequentialFileProcessor, attempt_file
from .grouping import NestedFileProcessor
from .directories import DirectoryGroupProcessor, DirectoryGroupingOptions
from .dryrun import DryRunAnalyzer, DryRunOptions, AnalysisPlan
from .ordering import order_files
from .report import JSONReportGenerator, ReportOptions

logger = logging.getLogger(__name__)

SKIP_DIRS = {'.git', '.hg', '.svn', 'node_modules', '__pycache__', '.venv', 'venv', 'dist', 'build', '.tox', '.mypy_cache', '.pytest_cache'}
GLOB_CHARS = ('*', '?', '[')


class TheFileReview(FileReview):
    def __init__(self, processor: FileProcessor, config: SequentialProcessingConfig | None = None, renderer: ProgressRenderer | None = None, cancel_event: threading.Event | None = None):
        self.processor = processor
        self.config = config or SequentialProcessingConfig.load()
        self.renderer = renderer
        self.cancel_event = cancel_event
        self.nested = NestedFileProcessor()

    def _git_changes(self, path: str) -> list[str]:
        # Modified, staged and untracked files of the enclosing repository, deletions excluded
        try:
            p = Path(path).resolve()
            repo = Repo(p if p.is_dir() else p.parent, search_parent_directories=True)
            try:
                modified = repo.git.diff("HEAD", "--name-only", "--diff-filter=d").splitlines()
            except Exception:  # Repo has no commits yet
                modified = []
            staged = repo.git.diff("--cached", "--name-only", "--diff-filter=d").splitlines()
            relative = list(dict.fromkeys(modified + staged + repo.untracked_files))
            root = Path(repo.working_tree_dir)
            return [str(root / f) for f in relative]
        except Exception as e:
            raise ValueError(f"Failed to get git changes: {e}") from e

    def _walk(self, directory: str) -> list[str]:
        # Recursive, skipping VCS, dependency and build directories
        files = []
        for dirpath, dirnames, filenames in os.walk(directory):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS and not d.startswith('.'))
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                if self.processor.supports(path):
                    files.append(os.path.abspath(path))
        return files

    def collect(self, command: ReviewCommand) -> list[str]:
        targets = list(command.targets) or ['.']
        files: list[str] = []
        if command.type == 'changes':
            for target in targets:
                # Only changes under the target directory count
                base = Path(target).resolve()
                scope = base if base.is_dir() else base.parent
                changed = self._git_changes(target)
                files.extend(f for f in changed if self.processor.supports(f) and Path(f).resolve().is_relative_to(scope))
        else:
            for target in targets:
                if any(c in target for c in GLOB_CHARS) and not os.path.exists(target):
                    files.extend(f for f in self.nested.expand_glob_pattern(target) if self.processor.supports(f))
                elif os.path.isdir(target):
                    files.extend(self._walk(target))
                else:
                    # Explicit files are kept even if missing; the run records them as failures
                    if not os.path.isfile(target):
                        print(f"[WARNING] {target} not found")
                    files.append(os.path.abspath(target))

        files = list(dict.fromkeys(files))
        ordered = order_files(files, self.config.reporting.file_ordering)
        logger.info("%d files collected for %s", len(ordered), command.type)
        return ordered

    @staticmethod
    def _root(files: list[str]) -> str | None:
        # Deepest directory shared by all files; directory groups are named relative to it
        if not files:
            return None
        try:
            return os.path.commonpath([os.path.dirname(os.path.abspath(f)) for f in files])
        except ValueError:  # Different drives
            return None

    def plan(self, files: list[str]) -> AnalysisPlan:
        dry = self.config.dry_run
        options = DryRunOptions(dry.base_estimate_ms, dry.per_kb_ms, self.config.reporting.file_ordering, self._root(files))
        return DryRunAnalyzer(options).create_analysis_plan(files)

    def _options(self) -> ProcessingOptions:
        display = self.config.progress_display
        errors = self.config.error_handling
        renderer = None
        if display.enabled:
            renderer = self.renderer or ProgressRenderer.create(display)
        return ProcessingOptions(
            show_progress=display.enabled,
            continue_on_error=errors.continue_on_error,
            max_errors=errors.max_errors,
            renderer=renderer,
            cancel_event=self.cancel_event,
        )

    def _run_parallel(self, files: list[str]) -> ProcessingResults:
        # No error budget here; results keep input order. The processor must be thread-safe.
        workers = os.cpu_count() or 1  # Fallback to single worker when CPU count is unavailable.
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(attempt_file, self.processor, file) for file in files]
            return ProcessingResults(future.result() for future in futures)

    def run(self, command: ReviewCommand) -> ReviewRun:
        cfg = self.config
        files = self.collect(command)
        mode = ProcessingModeSelector.determine_processing_mode_advanced(
            command,
            len(files),
            force_sequential=cfg.sequential,
            force_parallel=cfg.parallel,
            sequential_threshold=cfg.sequential_threshold,
        )
        if cfg.dry_run.enabled:
            return ReviewRun(mode, files, plan=self.plan(files))

        grouped = None
        label = mode.value
        if mode == ProcessingMode.PARALLEL:
            results = self._run_parallel(files)
        elif cfg.reporting.group_by_directory:
            grouping = DirectoryGroupingOptions(show_directory_tree=cfg.reporting.show_directory_tree, root=self._root(files))
            grouped = DirectoryGroupProcessor().process_files_with_directory_grouping(files, self.processor, grouping, self._options())
            results = grouped.results
            label = grouped.processing_mode
        else:
            results = SequentialFileProcessor().process_files(files, self.processor, self._options())

        run = ReviewRun(mode, files, results, SequentialFileProcessor.get_stats(results), grouped=grouped)
        reporting = cfg.reporting
        if reporting.output_format in ('json', 'both') or reporting.json_report_path:
            options = ReportOptions(include_metrics=reporting.include_metrics, include_error_details=reporting.include_error_details)
            run.report = JSONReportGenerator().generate_report(results, options, label)
            if reporting.json_report_path:
                run.report_path = JSONReportGenerator.save_report(run.report, reporting.json_report_path)
        return run
