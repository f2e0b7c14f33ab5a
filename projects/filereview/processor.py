import time
import logging
import threading
from typing import Any, Callable
from dataclasses import dataclass, field
from .architecture import FileProcessor, ProgressRenderer
from .model import (
    AnalysisOutcome, FileStatus, ProcessingResult, ProcessingResults, ProcessingStats, EventListener,
    FileStarted, FileCompleted, FileFailed, ProcessingFinished,
)

logger = logging.getLogger(__name__)

STOPPED_ON_FIRST_ERROR = "stopped on first error"


def stopped_after_errors(count: int, max_errors: int) -> str:
    return f"stopped after {count} errors (max-errors={max_errors})"


@dataclass
class ProcessingOptions:
    show_progress: bool = True
    continue_on_error: bool = True
    max_errors: int | None = None  # None = unbounded; 0 stops before the first file
    on_file_start: Callable[[str, int, int], None] | None = None
    on_file_complete: Callable[[str, ProcessingResult], None] | None = None
    on_error: Callable[[str, BaseException], None] | None = None
    on_event: EventListener | None = None
    renderer: ProgressRenderer | None = None
    cancel_event: threading.Event | None = None
    queue: "FileProcessingQueue | None" = None  # caller-owned queue to observe per-file status


@dataclass
class QueueEntry:
    file: str
    status: FileStatus = FileStatus.PENDING
    start_time: float | None = None
    end_time: float | None = None


class FileProcessingQueue:
    # Per-run lifecycle bookkeeping; entries are indexed so duplicate paths stay distinct
    def __init__(self, files: list[str] | None = None):
        self.entries: list[QueueEntry] = []
        self.reset(files or [])

    def reset(self, files: list[str]) -> None:
        self.entries = [QueueEntry(file) for file in files]

    def next_file(self) -> tuple[int, str] | None:
        for i, entry in enumerate(self.entries):
            if entry.status == FileStatus.PENDING:
                return i, entry.file
        return None

    def mark_running(self, index: int) -> None:
        entry = self.entries[index]
        entry.status = FileStatus.RUNNING
        entry.start_time = time.time()

    def mark_done(self, index: int, result: ProcessingResult) -> None:
        entry = self.entries[index]
        entry.status = result.status
        entry.start_time = result.start_time
        entry.end_time = result.end_time

    def skip_remaining(self) -> int:
        # Files never attempted after an early stop
        n = 0
        for entry in self.entries:
            if entry.status == FileStatus.PENDING:
                entry.status = FileStatus.SKIPPED
                n += 1
        return n

    def is_complete(self) -> bool:
        return all(e.status not in (FileStatus.PENDING, FileStatus.RUNNING) for e in self.entries)

    def status(self, index: int) -> FileStatus:
        return self.entries[index].status

    def stats(self) -> dict[str, int]:
        counts = {status.value: 0 for status in FileStatus}
        for entry in self.entries:
            counts[entry.status.value] += 1
        counts['total'] = len(self.entries)
        return counts


def attempt_file(processor: FileProcessor, file: str) -> ProcessingResult:
    # Run the processor once; any Exception becomes an ERROR result
    start_time = time.time()
    started = time.perf_counter()
    try:
        outcome = processor.process_file(file)
    except Exception as e:
        duration = (time.perf_counter() - started) * 1000
        logger.debug("%s failed after %.1fms: %s", file, duration, e)
        return ProcessingResult(file, False, FileStatus.ERROR, duration, start_time, time.time(), error=e)
    duration = (time.perf_counter() - started) * 1000
    if outcome is None:
        outcome = AnalysisOutcome()
    return ProcessingResult(file, True, FileStatus.SUCCESS, duration, start_time, time.time(), result=outcome)


class SequentialFileProcessor:
    def process_files(
        self,
        files: list[str],
        processor: FileProcessor,
        options: ProcessingOptions | None = None,
        errors_before: int = 0,
    ) -> ProcessingResults:
        # Process files one at a time, in input order.
        # errors_before: failures already spent by earlier batches (grouping), counted against max_errors.
        options = options or ProcessingOptions()
        files = list(files)
        if not files:
            return ProcessingResults()

        total = len(files)
        renderer = options.renderer if options.show_progress else None
        queue = options.queue if options.queue is not None else FileProcessingQueue()
        queue.reset(files)
        max_errors = options.max_errors

        results = ProcessingResults()
        errors = errors_before
        try:
            if renderer:
                renderer.start(total)
            if max_errors is not None and errors >= max_errors:
                # Budget already spent (max_errors=0 or earlier groups): nothing is attempted
                results.stop_reason = stopped_after_errors(errors, max_errors)
                queue.skip_remaining()
                files = []
            for i, file in enumerate(files):
                self._emit(options, FileStarted(file, i, total))
                if options.on_file_start:
                    options.on_file_start(file, i, total)
                if renderer:
                    renderer.update_file_status(file, FileStatus.RUNNING)
                queue.mark_running(i)

                result = attempt_file(processor, file)
                queue.mark_done(i, result)
                results.append(result)

                if result.success:
                    self._emit(options, FileCompleted(file, result))
                    if options.on_file_complete:
                        options.on_file_complete(file, result)
                else:
                    errors += 1
                    self._emit(options, FileFailed(file, result.error))
                    if options.on_error:
                        options.on_error(file, result.error)
                if renderer:
                    renderer.update_file_status(file, result.status)
                    if not result.success:
                        renderer.error(file, str(result.error))
                    renderer.update_progress(file, i + 1, total)

                reason = self._stop_reason(options, result, errors, max_errors, i + 1)
                if reason is not None:
                    results.stop_reason = reason
                    skipped = queue.skip_remaining()
                    logger.info("%s; %d files not attempted", reason, skipped)
                    break

            if renderer:
                renderer.complete()
        finally:
            if renderer:
                renderer.cleanup()

        self._emit(options, ProcessingFinished(results, results.stop_reason))
        return results

    def _stop_reason(self, options: ProcessingOptions, result: ProcessingResult, errors: int, max_errors: int | None, attempted: int) -> str | None:
        # Checked after each appended result
        if not options.continue_on_error and not result.success:
            return STOPPED_ON_FIRST_ERROR
        if max_errors is not None and errors >= max_errors:
            return stopped_after_errors(errors, max_errors)
        if options.cancel_event is not None and options.cancel_event.is_set():
            return f"cancelled after {attempted} files"
        return None

    def _emit(self, options: ProcessingOptions, event: Any) -> None:
        if options.on_event:
            options.on_event(event)

    @staticmethod
    def get_stats(results: list[ProcessingResult]) -> ProcessingStats:
        total = len(results)
        if total == 0:
            return ProcessingStats()
        successful = sum(1 for r in results if r.success)
        warnings = sum(1 for r in results if r.is_warning)
        total_duration = sum(r.duration for r in results)
        return ProcessingStats(
            total=total,
            successful=successful,
            failed=total - successful,
            warnings=warnings,
            average_duration=total_duration / total,
            total_duration=total_duration,
            success_rate=successful / total,
        )
