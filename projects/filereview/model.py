import math
from enum import Enum
from typing import Any, Callable, Mapping, Union
from dataclasses import dataclass, field


class ProcessingMode(str, Enum):
    # Label attached to a run; only SEQUENTIAL is executed by the core engine
    SEQUENTIAL = 'sequential'
    PARALLEL = 'parallel'


class FileStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    SUCCESS = 'success'
    ERROR = 'error'
    SKIPPED = 'skipped'


TERMINAL_STATUSES = (FileStatus.SUCCESS, FileStatus.ERROR)


@dataclass(frozen=True)
class ReviewCommand:
    # type: 'files' | 'directory' | 'pr' | 'changes'
    type: str
    targets: list[str] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class AnalysisOutcome:
    # Loosely-shaped per-file payload; anything besides the known keys lands in extra
    grade: str | None = None
    state: str | None = None
    issues: list[Any] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def of(value: Any) -> "AnalysisOutcome":
        # Total coercion: never raises, whatever the processor returned
        if isinstance(value, AnalysisOutcome):
            return value
        if isinstance(value, Mapping):
            data = dict(value)
        else:
            attrs = getattr(value, '__dict__', None)
            data = dict(attrs) if isinstance(attrs, dict) else {}

        grade = data.pop('grade', None)
        state = data.pop('state', None)
        issues = data.pop('issues', None)
        metrics = data.pop('metrics', None)
        return AnalysisOutcome(
            grade=grade.strip() if isinstance(grade, str) and grade.strip() else None,
            state=state.strip().lower() if isinstance(state, str) and state.strip() else None,
            issues=list(issues) if isinstance(issues, (list, tuple)) else [],
            metrics=dict(metrics) if isinstance(metrics, Mapping) else {},
            extra={str(k): v for k, v in data.items()},
        )

    @property
    def coverage(self) -> float | None:
        value = self.metrics.get('coverage', self.extra.get('coverage'))
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if math.isnan(value) or math.isinf(value):
            return None
        return float(value)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        if self.grade is not None:
            data['grade'] = self.grade
        if self.state is not None:
            data['state'] = self.state
        data['issues'] = list(self.issues)
        if self.metrics:
            data['metrics'] = dict(self.metrics)
        return data


@dataclass
class ProcessingResult:
    file: str
    success: bool
    status: FileStatus
    duration: float  # milliseconds
    start_time: float  # epoch seconds
    end_time: float  # epoch seconds
    result: Any = None
    error: BaseException | None = None

    def __post_init__(self):
        # Exactly one of result/error, matching success, with a terminal status
        if self.success:
            if self.error is not None or self.result is None or self.status != FileStatus.SUCCESS:
                raise ValueError(f"Successful result for {self.file} must carry SUCCESS status, a result and no error")
        else:
            if self.error is None or self.result is not None or self.status != FileStatus.ERROR:
                raise ValueError(f"Failed result for {self.file} must carry ERROR status, an error and no result")
        if self.duration < 0:
            raise ValueError(f"Negative duration for {self.file}: {self.duration}")

    @property
    def outcome(self) -> AnalysisOutcome:
        return AnalysisOutcome.of(self.result) if self.success else AnalysisOutcome()

    @property
    def is_warning(self) -> bool:
        return self.success and self.outcome.state == 'warning'


class ProcessingResults(list):
    # Plain list of ProcessingResult plus the reason processing ended early (None if every file was attempted)
    def __init__(self, results=(), stop_reason: str | None = None):
        super().__init__(results)
        self.stop_reason = stop_reason

    @property
    def stopped_early(self) -> bool:
        return self.stop_reason is not None


@dataclass(frozen=True)
class ProcessingStats:
    total: int = 0
    successful: int = 0
    failed: int = 0
    warnings: int = 0  # subset of successful
    average_duration: float = 0.0
    total_duration: float = 0.0
    success_rate: float = 0.0


# Observer events, dispatched synchronously in file order
@dataclass(frozen=True)
class FileStarted:
    file: str
    index: int
    total: int


@dataclass(frozen=True)
class FileCompleted:
    file: str
    result: ProcessingResult


@dataclass(frozen=True)
class FileFailed:
    file: str
    error: BaseException


@dataclass(frozen=True)
class ProcessingFinished:
    results: ProcessingResults
    stop_reason: str | None = None


ProcessingEvent = Union[FileStarted, FileCompleted, FileFailed, ProcessingFinished]
EventListener = Callable[[ProcessingEvent], None]


@dataclass
class ReviewRun:
    # Everything one CLI invocation produced; report/plan/grouped stay None when not requested
    mode: ProcessingMode
    files: list[str]
    results: ProcessingResults = field(default_factory=ProcessingResults)
    stats: ProcessingStats = field(default_factory=ProcessingStats)
    plan: Any = None
    grouped: Any = None
    report: Any = None
    report_path: str | None = None

    @property
    def stop_reason(self) -> str | None:
        return self.results.stop_reason

    @property
    def dry_run(self) -> bool:
        return self.plan is not None
