import threading

import pytest

from projects.filereview.model import (
    AnalysisOutcome, FileCompleted, FileFailed, FileStarted, FileStatus, ProcessingFinished, ProcessingResult,
)
from projects.filereview.processor import (
    FileProcessingQueue, ProcessingOptions, SequentialFileProcessor, STOPPED_ON_FIRST_ERROR,
)

from .conftest import FakeProcessor, RecordingRenderer

FILES = ["a.ts", "b.ts", "c.ts"]


def run(files, processor, **options):
    return SequentialFileProcessor().process_files(files, processor, ProcessingOptions(**options))


def test_all_files_succeed_in_order():
    processor = FakeProcessor()
    results = run(FILES, processor, show_progress=False)

    assert [r.file for r in results] == FILES
    assert all(r.status == FileStatus.SUCCESS and r.success for r in results)
    assert all(r.error is None and r.result is not None for r in results)
    assert results.stop_reason is None
    assert processor.calls == FILES


def test_failure_is_contained_and_processing_continues():
    results = run(FILES, FakeProcessor(fail={"b.ts"}), show_progress=False)

    assert [r.status for r in results] == [FileStatus.SUCCESS, FileStatus.ERROR, FileStatus.SUCCESS]
    failed = results[1]
    assert failed.success is False
    assert failed.result is None
    assert isinstance(failed.error, RuntimeError)

    stats = SequentialFileProcessor.get_stats(results)
    assert stats.total == 3
    assert stats.successful == 2
    assert stats.failed == 1
    assert stats.success_rate == pytest.approx(2 / 3)


def test_max_errors_stops_after_budget():
    files = [f"f{i}.py" for i in range(5)]
    processor = FakeProcessor(fail={"*"})
    results = run(files, processor, show_progress=False, max_errors=2)

    assert len(results) == 2
    assert all(r.status == FileStatus.ERROR for r in results)
    assert processor.calls == files[:2]
    assert results.stop_reason == "stopped after 2 errors (max-errors=2)"


def test_stop_on_first_error():
    files = ["w.py", "x.py", "y.py", "z.py"]
    processor = FakeProcessor(fail={"x.py"})
    results = run(files, processor, show_progress=False, continue_on_error=False)

    assert [r.status for r in results] == [FileStatus.SUCCESS, FileStatus.ERROR]
    assert processor.calls == ["w.py", "x.py"]
    assert results.stop_reason == STOPPED_ON_FIRST_ERROR


def test_empty_input_fires_nothing():
    events = []
    renderer = RecordingRenderer()
    results = run(
        [],
        FakeProcessor(),
        renderer=renderer,
        on_file_start=lambda *a: events.append(a),
        on_file_complete=lambda *a: events.append(a),
        on_error=lambda *a: events.append(a),
        on_event=events.append,
    )

    assert results == []
    assert events == []
    assert renderer.calls == []

    stats = SequentialFileProcessor.get_stats([])
    assert (stats.total, stats.successful, stats.failed, stats.success_rate) == (0, 0, 0, 0)


def test_unbounded_without_budget_attempts_everything():
    files = [f"f{i}.py" for i in range(7)]
    results = run(files, FakeProcessor(fail={"f1.py", "f3.py", "f5.py"}), show_progress=False)
    assert len(results) == len(files)
    assert [r.file for r in results] == files


def test_zero_max_errors_attempts_nothing():
    processor = FakeProcessor(fail={"*"})
    renderer = RecordingRenderer()
    queue = FileProcessingQueue()
    results = run(["a.py", "b.py"], processor, renderer=renderer, max_errors=0, queue=queue)

    assert len(results) == 0
    assert results.stop_reason == "stopped after 0 errors (max-errors=0)"
    assert processor.calls == []
    assert renderer.names() == ["start", "complete", "cleanup"]
    assert queue.stats()["skipped"] == 2


def test_spent_budget_from_earlier_groups_attempts_nothing():
    processor = FakeProcessor()
    results = SequentialFileProcessor().process_files(
        ["a.py"], processor, ProcessingOptions(show_progress=False, max_errors=2), errors_before=2
    )
    assert len(results) == 0
    assert results.stop_reason == "stopped after 2 errors (max-errors=2)"
    assert processor.calls == []


def test_processor_returning_nothing_still_carries_a_result():
    results = run(["a.py"], FakeProcessor(outcomes={"a.py": None}), show_progress=False)

    assert results[0].success
    assert results[0].error is None
    assert results[0].result == AnalysisOutcome()


def test_stop_on_first_error_takes_precedence_over_budget():
    results = run(["a.py", "b.py"], FakeProcessor(fail={"*"}), show_progress=False, continue_on_error=False, max_errors=1)
    assert len(results) == 1
    assert results.stop_reason == STOPPED_ON_FIRST_ERROR


def test_callbacks_fire_once_per_attempted_file_in_order():
    seen = []
    results = run(
        FILES,
        FakeProcessor(fail={"b.ts"}),
        show_progress=False,
        on_file_start=lambda f, i, n: seen.append(("start", f, i, n)),
        on_file_complete=lambda f, r: seen.append(("complete", f, r.status)),
        on_error=lambda f, e: seen.append(("error", f, str(e))),
    )

    assert seen == [
        ("start", "a.ts", 0, 3),
        ("complete", "a.ts", FileStatus.SUCCESS),
        ("start", "b.ts", 1, 3),
        ("error", "b.ts", "boom: b.ts"),
        ("start", "c.ts", 2, 3),
        ("complete", "c.ts", FileStatus.SUCCESS),
    ]
    assert len(results) == 3


def test_events_are_tagged_and_end_with_finished():
    events = []
    results = run(["a.py", "b.py"], FakeProcessor(fail={"b.py"}), show_progress=False, on_event=events.append)

    assert [type(e) for e in events] == [FileStarted, FileCompleted, FileStarted, FileFailed, ProcessingFinished]
    assert events[0] == FileStarted("a.py", 0, 2)
    assert events[-1].results is results
    assert events[-1].stop_reason is None


def test_renderer_protocol():
    renderer = RecordingRenderer()
    run(["a.py", "b.py"], FakeProcessor(fail={"b.py"}), renderer=renderer)

    assert renderer.calls[0] == ("start", 2)
    assert ("update_file_status", "a.py", FileStatus.RUNNING) in renderer.calls
    assert ("update_file_status", "b.py", FileStatus.ERROR) in renderer.calls
    assert ("error", "b.py", "boom: b.py") in renderer.calls
    assert ("update_progress", "b.py", 2, 2) in renderer.calls
    assert renderer.names()[-2:] == ["complete", "cleanup"]


def test_renderer_completes_on_early_stop():
    renderer = RecordingRenderer()
    run(["a.py", "b.py", "c.py"], FakeProcessor(fail={"*"}), renderer=renderer, max_errors=1)
    assert renderer.names()[-2:] == ["complete", "cleanup"]
    assert ("start", 3) in renderer.calls


def test_renderer_not_driven_without_show_progress():
    renderer = RecordingRenderer()
    run(["a.py"], FakeProcessor(), renderer=renderer, show_progress=False)
    assert renderer.calls == []


def test_renderer_cleanup_runs_when_renderer_raises():
    renderer = RecordingRenderer(raise_on="update_progress")
    with pytest.raises(RuntimeError, match="update_progress"):
        run(["a.py", "b.py"], FakeProcessor(), renderer=renderer)
    assert renderer.names()[-1] == "cleanup"
    assert "complete" not in renderer.names()


def test_callback_exceptions_propagate():
    def explode(file, result):
        raise KeyError(file)

    renderer = RecordingRenderer()
    with pytest.raises(KeyError):
        run(["a.py"], FakeProcessor(), renderer=renderer, on_file_complete=explode)
    assert renderer.names()[-1] == "cleanup"


def test_cancel_event_stops_after_current_file():
    cancel = threading.Event()
    processor = FakeProcessor()

    def cancel_after_first(file, result):
        cancel.set()

    results = run(["a.py", "b.py", "c.py"], processor, show_progress=False, cancel_event=cancel, on_file_complete=cancel_after_first)
    assert [r.file for r in results] == ["a.py"]
    assert results.stop_reason == "cancelled after 1 files"
    assert processor.calls == ["a.py"]


def test_errors_before_counts_against_budget():
    results = SequentialFileProcessor().process_files(
        ["a.py", "b.py"], FakeProcessor(fail={"*"}), ProcessingOptions(show_progress=False, max_errors=3), errors_before=2
    )
    assert len(results) == 1
    assert results.stop_reason == "stopped after 3 errors (max-errors=3)"


def test_caller_queue_tracks_skipped_files():
    queue = FileProcessingQueue()
    run(["a.py", "b.py", "c.py"], FakeProcessor(fail={"a.py"}), show_progress=False, continue_on_error=False, queue=queue)

    assert queue.status(0) == FileStatus.ERROR
    assert queue.status(1) == FileStatus.SKIPPED
    assert queue.is_complete()
    stats = queue.stats()
    assert stats["error"] == 1
    assert stats["skipped"] == 2
    assert stats["total"] == 3
    assert queue.next_file() is None


def test_queue_next_file_and_reset():
    queue = FileProcessingQueue(["a.py", "b.py"])
    assert queue.next_file() == (0, "a.py")
    queue.mark_running(0)
    assert queue.next_file() == (1, "b.py")
    assert not queue.is_complete()
    queue.reset(["c.py"])
    assert queue.next_file() == (0, "c.py")


def test_warnings_are_a_subset_of_successes():
    processor = FakeProcessor(outcomes={"b.py": {"grade": "C", "state": "warning", "issues": ["x"]}})
    results = run(["a.py", "b.py", "c.py"], processor, show_progress=False)
    stats = SequentialFileProcessor.get_stats(results)

    assert stats.warnings == 1
    assert stats.successful == 3
    assert stats.successful + stats.failed == stats.total


def test_duration_and_times_are_recorded():
    results = run(["a.py"], FakeProcessor(), show_progress=False)
    result = results[0]
    assert result.duration >= 0
    assert result.end_time >= result.start_time


def test_result_invariant_is_enforced():
    with pytest.raises(ValueError):
        ProcessingResult("a.py", True, FileStatus.ERROR, 0, 0, 0)
    with pytest.raises(ValueError):
        ProcessingResult("a.py", False, FileStatus.ERROR, 0, 0, 0, result={"grade": "A"}, error=RuntimeError())
    with pytest.raises(ValueError):
        ProcessingResult("a.py", False, FileStatus.ERROR, 0, 0, 0)
    with pytest.raises(ValueError):
        ProcessingResult("a.py", True, FileStatus.SUCCESS, -1, 0, 0, result={})
    with pytest.raises(ValueError):
        ProcessingResult("a.py", True, FileStatus.SUCCESS, 0, 0, 0)
