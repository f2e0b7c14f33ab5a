"""JSON report aggregation for a processing run.

A report covers the files that were actually attempted; files skipped by an
early stop are not padded in. ``include_metrics=False`` leaves
``aggregated_metrics`` as ``None`` and drops the ``aggregatedMetrics`` key
from the serialized report.
"""

import json
import logging
import statistics
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping
from collections import Counter
from datetime import datetime, timezone
from dataclasses import dataclass, field
from .model import ProcessingResult

logger = logging.getLogger(__name__)

VERSION = '1.0.0'
GENERATED_BY = 'filereview'
GRADES = ('A', 'B', 'C', 'D', 'F')
GRADE_POINTS = {'A': 4, 'B': 3, 'C': 2, 'D': 1, 'F': 0}
SORT_KEYS = ('path', 'grade', 'duration', 'issues')
COMMON_ISSUES = 10


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class ReportOptions:
    include_metrics: bool = True
    include_error_details: bool = True
    sort_by: str | None = None  # 'path' | 'grade' | 'duration' | 'issues'
    sort_order: str = 'asc'
    filter_by_status: list[str] | None = None  # e.g. ['error']; shapes `files` only


@dataclass(frozen=True)
class NumericStats:
    min: float
    max: float
    average: float
    median: float

    @staticmethod
    def of(values: list[float]) -> "NumericStats | None":
        if not values:
            return None
        return NumericStats(min(values), max(values), statistics.fmean(values), statistics.median(values))

    def to_dict(self) -> dict[str, float]:
        return {'min': self.min, 'max': self.max, 'average': self.average, 'median': self.median}


@dataclass(frozen=True)
class ReportMetadata:
    timestamp: str
    total_files: int
    processing_mode: str
    duration: float
    version: str = VERSION
    generated_by: str = GENERATED_BY


@dataclass(frozen=True)
class ReportSummary:
    total_files: int
    successful_files: int
    failed_files: int
    warning_files: int
    average_grade: str | None
    total_issues: int
    average_coverage: float | None
    average_duration: float
    success_rate: float


@dataclass(frozen=True)
class FileReport:
    path: str
    status: str
    duration: float
    start_time: str
    end_time: str
    analysis: Mapping[str, Any] | None = None
    error: Mapping[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            'path': self.path,
            'status': self.status,
            'duration': self.duration,
            'startTime': self.start_time,
            'endTime': self.end_time,
        }
        if self.analysis is not None:
            data['analysis'] = dict(self.analysis)
        if self.error is not None:
            data['error'] = dict(self.error)
        return data


@dataclass(frozen=True)
class AggregatedMetrics:
    grade_distribution: Mapping[str, int]
    coverage_stats: NumericStats | None
    duration_stats: NumericStats | None
    common_issues: tuple[tuple[str, int], ...] = ()
    issues_by_type: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    issues_by_severity: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {'gradeDistribution': dict(self.grade_distribution)}
        if self.coverage_stats is not None:
            data['coverageStats'] = self.coverage_stats.to_dict()
        if self.duration_stats is not None:
            data['durationStats'] = self.duration_stats.to_dict()
        data['commonIssues'] = [{'issue': issue, 'count': count} for issue, count in self.common_issues]
        data['issuesByType'] = dict(self.issues_by_type)
        data['issuesBySeverity'] = dict(self.issues_by_severity)
        return data


@dataclass(frozen=True)
class JSONReport:
    metadata: ReportMetadata
    summary: ReportSummary
    files: tuple[FileReport, ...]
    aggregated_metrics: AggregatedMetrics | None = None

    def to_dict(self) -> dict[str, Any]:
        m = self.metadata
        s = self.summary
        data: dict[str, Any] = {
            'metadata': {
                'timestamp': m.timestamp,
                'totalFiles': m.total_files,
                'processingMode': m.processing_mode,
                'duration': m.duration,
                'version': m.version,
                'generatedBy': m.generated_by,
            },
            'summary': {
                'totalFiles': s.total_files,
                'successfulFiles': s.successful_files,
                'failedFiles': s.failed_files,
                'warningFiles': s.warning_files,
                'averageGrade': s.average_grade,
                'totalIssues': s.total_issues,
                'averageCoverage': s.average_coverage,
                'averageDuration': s.average_duration,
                'successRate': s.success_rate,
            },
            'files': [f.to_dict() for f in self.files],
        }
        if self.aggregated_metrics is not None:
            data['aggregatedMetrics'] = self.aggregated_metrics.to_dict()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


def _issue_text(issue: Any) -> str:
    if isinstance(issue, Mapping):
        return str(issue.get('message') or issue.get('description') or issue.get('type') or 'unknown issue')
    return str(issue)


def _issue_field(issue: Any, key: str, default: str) -> str:
    if isinstance(issue, Mapping) and isinstance(issue.get(key), str) and issue[key].strip():
        return issue[key].strip().lower()
    return default


class JSONReportGenerator:
    def generate_report(self, results: list[ProcessingResult], options: ReportOptions | None = None, processing_mode: str = 'sequential') -> JSONReport:
        """Aggregate attempted results into an immutable report; ``results`` is left untouched."""
        options = options or ReportOptions()
        results = list(results)
        successful = [r for r in results if r.success]
        outcomes = [r.outcome for r in successful]

        grades = [o.grade.upper() for o in outcomes if o.grade]
        points = [GRADE_POINTS[g] for g in grades if g in GRADE_POINTS]
        coverages = [c for c in (o.coverage for o in outcomes) if c is not None]
        durations = [r.duration for r in results]

        average_grade = None
        if points:
            mean = statistics.fmean(points)
            average_grade = min(GRADE_POINTS, key=lambda g: abs(GRADE_POINTS[g] - mean))

        summary = ReportSummary(
            total_files=len(results),
            successful_files=len(successful),
            failed_files=len(results) - len(successful),
            warning_files=sum(1 for o in outcomes if o.state == 'warning'),
            average_grade=average_grade,
            total_issues=sum(len(o.issues) for o in outcomes),
            average_coverage=statistics.fmean(coverages) if coverages else None,
            average_duration=statistics.fmean(durations) if durations else 0.0,
            success_rate=len(successful) / len(results) if results else 0.0,
        )

        run_duration = 0.0
        if results:
            run_duration = max(0.0, (max(r.end_time for r in results) - min(r.start_time for r in results)) * 1000)
        metadata = ReportMetadata(
            timestamp=datetime.now(timezone.utc).isoformat(),
            total_files=len(results),
            processing_mode=processing_mode,
            duration=run_duration,
        )

        aggregated = None
        if options.include_metrics:
            aggregated = self._aggregate(outcomes, grades, coverages, durations)

        files = tuple(self._file_report(r, options) for r in self._select(results, options))
        logger.debug("report over %d files (%d listed)", len(results), len(files))
        return JSONReport(metadata, summary, files, aggregated)

    def _aggregate(self, outcomes: list, grades: list[str], coverages: list[float], durations: list[float]) -> AggregatedMetrics:
        distribution = {g: 0 for g in GRADES}
        for grade in grades:
            distribution[grade] = distribution.get(grade, 0) + 1

        issues = [issue for o in outcomes for issue in o.issues]
        common = Counter(_issue_text(i) for i in issues).most_common(COMMON_ISSUES)
        by_type = Counter(_issue_field(i, 'type', 'general') for i in issues)
        by_severity = Counter(_issue_field(i, 'severity', 'unknown') for i in issues)
        return AggregatedMetrics(
            grade_distribution=MappingProxyType(distribution),
            coverage_stats=NumericStats.of(coverages),
            duration_stats=NumericStats.of(durations),
            common_issues=tuple(common),
            issues_by_type=MappingProxyType(dict(by_type)),
            issues_by_severity=MappingProxyType(dict(by_severity)),
        )

    def _select(self, results: list[ProcessingResult], options: ReportOptions) -> list[ProcessingResult]:
        # Filtering and sorting only shape the `files` list
        selected = results
        if options.filter_by_status:
            wanted = {s.lower() for s in options.filter_by_status}
            selected = [r for r in selected if r.status.value in wanted]
        if options.sort_by is None:
            return list(selected)
        if options.sort_by not in SORT_KEYS:
            raise ValueError(f"Unsupported sort key {options.sort_by} {list(SORT_KEYS)}")

        def key(r: ProcessingResult):
            if options.sort_by == 'grade':
                grade = (r.outcome.grade or '').upper()
                return GRADE_POINTS.get(grade, -1)
            if options.sort_by == 'duration':
                return r.duration
            if options.sort_by == 'issues':
                return len(r.outcome.issues)
            return r.file

        return sorted(selected, key=key, reverse=options.sort_order == 'desc')

    def _file_report(self, r: ProcessingResult, options: ReportOptions) -> FileReport:
        analysis = None
        error = None
        if r.success:
            analysis = MappingProxyType(r.outcome.to_dict())
        else:
            details = {'message': str(r.error)}
            if options.include_error_details:
                details['type'] = type(r.error).__name__
            error = MappingProxyType(details)
        return FileReport(r.file, r.status.value, r.duration, _iso(r.start_time), _iso(r.end_time), analysis, error)

    @staticmethod
    def save_report(report: JSONReport, path: str) -> str:
        # Pretty-printed UTF-8 JSON; parent directories are created
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(report.to_json() + '\n', encoding='utf-8')
        except OSError as e:
            raise ValueError(f"Failed to save report to {path}: {e}") from e
        logger.info("report saved to %s", target)
        return str(target.resolve())


def format_summary(report: JSONReport) -> list[str]:
    # Console rendering of the summary block
    s = report.summary
    lines = [
        f"Processed {s.total_files} files: {s.successful_files} succeeded, {s.failed_files} failed",
        f"Success rate: {s.success_rate * 100:.1f}%, average duration: {s.average_duration:.0f}ms",
    ]
    if s.warning_files:
        lines.append(f"Warnings: {s.warning_files}")
    if s.average_grade is not None:
        lines.append(f"Average grade: {s.average_grade}, issues: {s.total_issues}")
    if s.average_coverage is not None:
        lines.append(f"Average coverage: {s.average_coverage:.1f}")
    metrics = report.aggregated_metrics
    if metrics is not None and any(metrics.grade_distribution.values()):
        lines.append('Grades: ' + ', '.join(f"{g}={n}" for g, n in metrics.grade_distribution.items()))
    return lines
