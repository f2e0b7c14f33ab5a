"""Configuration for sequential processing runs.

Sources, lowest to highest precedence:

1. field defaults
2. JSON config file (``~/.filereview/config.json`` or ``$FILEREVIEW_CONFIG``)
3. environment variables (prefix ``FILEREVIEW_``, nested with ``__``,
   e.g. ``FILEREVIEW_ERROR_HANDLING__MAX_ERRORS=5``)
4. overrides passed to :meth:`SequentialProcessingConfig.load` (CLI flags)

When stdout is not a terminal, progress and colors are turned off unless
set explicitly. Values that fail validation are logged and replaced by
their defaults; every other value, CLI overrides included, is kept.
"""

import os
import sys
import logging
from pathlib import Path
from typing import Any, Literal
from dataclasses import dataclass, field, replace

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import EnvSettingsSource, JsonConfigSettingsSource, PydanticBaseSettingsSource

from .ordering import FILE_ORDERINGS

logger = logging.getLogger(__name__)

ENV_PREFIX = "FILEREVIEW_"
CONFIG_ENV = "FILEREVIEW_CONFIG"
OUTPUT_FORMATS = ('console', 'json', 'both')
DEFAULT_MAX_ERRORS = 10


def default_config_file() -> Path:
    env = os.environ.get(CONFIG_ENV)
    return Path(env).expanduser() if env else Path.home() / ".filereview" / "config.json"


def _merge(target: dict[str, Any], source: dict[str, Any]) -> None:
    # Deep merge; source wins
    for key, value in source.items():
        if isinstance(value, dict):
            if not isinstance(target.get(key), dict):
                target[key] = {}
            _merge(target[key], value)
        else:
            target[key] = value


def _drop(data: dict[str, Any], loc: tuple) -> bool:
    # Remove the value at a validation error location, or the nearest non-mapping parent on the way
    node: Any = data
    for i, key in enumerate(loc):
        if not isinstance(node, dict) or key not in node:
            return False
        if i == len(loc) - 1 or not isinstance(node[key], dict):
            del node[key]
            return True
        node = node[key]
    return False


class ProgressDisplayConfig(BaseModel):
    enabled: bool = Field(default=True, description="Render progress while processing.")
    show_eta: bool = Field(default=True)
    show_throughput: bool = Field(default=False)
    use_colors: bool = Field(default=True)
    update_interval_ms: int = Field(default=100, ge=0)
    max_path_length: int = Field(default=60, ge=10)


class ErrorHandlingConfig(BaseModel):
    continue_on_error: bool = Field(default=True)
    max_errors: int | None = Field(default=DEFAULT_MAX_ERRORS, ge=0, le=1000, description="Failures allowed before stopping; null disables the limit.")


class ReportingConfig(BaseModel):
    output_format: Literal['console', 'json', 'both'] = Field(default='console')
    json_report_path: str | None = Field(default=None)
    include_metrics: bool = Field(default=True)
    include_error_details: bool = Field(default=True)
    group_by_directory: bool = Field(default=False)
    show_directory_tree: bool = Field(default=True)
    file_ordering: Literal['alphabetical', 'size', 'modified', 'natural'] = Field(default='alphabetical')


class DryRunConfig(BaseModel):
    enabled: bool = Field(default=False)
    base_estimate_ms: int = Field(default=500, ge=0)
    per_kb_ms: int = Field(default=250, ge=0)


class SequentialProcessingConfig(BaseSettings):
    """Runtime settings for a review run."""

    model_config = SettingsConfigDict(
        extra="ignore",
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
    )

    sequential: bool = Field(default=False, description="Force sequential processing.")
    parallel: bool = Field(default=False, description="Force parallel processing.")
    sequential_threshold: int | None = Field(default=None, ge=0)

    progress_display: ProgressDisplayConfig = Field(default_factory=ProgressDisplayConfig)
    error_handling: ErrorHandlingConfig = Field(default_factory=ErrorHandlingConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    dry_run: DryRunConfig = Field(default_factory=DryRunConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        json_file = None
        if hasattr(init_settings, "init_kwargs"):
            json_file = init_settings.init_kwargs.get("_filereview_json_file")  # type: ignore[attr-defined]

        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings]
        if json_file is not None:
            sources.append(JsonConfigSettingsSource(settings_cls, json_file=json_file))
        return tuple(sources)

    @classmethod
    def load(cls, config_file: str | Path | None = None, isatty: bool | None = None, **overrides: Any) -> "SequentialProcessingConfig":
        path = Path(config_file).expanduser() if config_file else default_config_file()
        json_file = path if path.is_file() else None
        if config_file and json_file is None:
            logger.warning("config file %s not found, ignoring", path)

        try:
            config = cls(_filereview_json_file=json_file, **overrides)
        except ValidationError as e:
            config = cls._recover(json_file, overrides, e)

        if isatty is None:
            isatty = sys.stdout.isatty()
        if not isatty:
            config = cls._detect_terminal(config, overrides)
        return config

    @classmethod
    def _recover(cls, json_file: Path | None, overrides: dict[str, Any], error: ValidationError) -> "SequentialProcessingConfig":
        # Drop only the offending values and keep everything else, CLI overrides included
        data: dict[str, Any] = {}
        if json_file is not None:
            _merge(data, JsonConfigSettingsSource(cls, json_file=json_file)())
        _merge(data, EnvSettingsSource(cls)())
        _merge(data, overrides)

        while True:
            dropped = [loc for loc in (tuple(err['loc']) for err in error.errors()) if _drop(data, loc)]
            if not dropped:
                logger.warning("invalid configuration, falling back to defaults: %s", error)
                return cls.model_construct()
            logger.warning("invalid configuration, falling back to defaults for %s",
                           ', '.join('.'.join(str(part) for part in loc) for loc in dropped))
            try:
                # Validates the merged data as is; sources are not read again
                return cls.model_validate(data)
            except ValidationError as e:
                error = e

    @classmethod
    def _detect_terminal(cls, config: "SequentialProcessingConfig", overrides: dict[str, Any]) -> "SequentialProcessingConfig":
        # Non-interactive output: drop progress and colors unless explicitly requested
        explicit = dict(overrides.get('progress_display') or {})
        update: dict[str, Any] = {}
        for key in ('enabled', 'use_colors'):
            env = f"{ENV_PREFIX}PROGRESS_DISPLAY__{key.upper()}"
            if key not in explicit and env not in os.environ:
                update[key] = False
        if not update:
            return config
        return config.model_copy(update={'progress_display': config.progress_display.model_copy(update=update)})


def apply_overrides(config: SequentialProcessingConfig, overrides: dict[str, Any]) -> SequentialProcessingConfig:
    # Validated, section-wise merge; unknown keys are ignored
    update: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in SequentialProcessingConfig.model_fields:
            continue
        current = getattr(config, key)
        if isinstance(current, BaseModel) and isinstance(value, dict):
            update[key] = type(current).model_validate({**current.model_dump(), **value})
        else:
            update[key] = value
    return config.model_copy(update=update)


@dataclass
class CLIOptions:
    # Raw flag values; None means "not given on the command line"
    sequential: bool = False
    parallel: bool = False
    dry_run: bool = False
    json_report: str | None = None
    group_by_directory: bool = False
    output_format: str | None = None
    show_progress: bool | None = None
    show_eta: bool | None = None
    show_throughput: bool | None = None
    continue_on_error: bool | None = None
    max_errors: Any = None
    file_ordering: str | None = None


@dataclass
class CLIValidationResult:
    options: CLIOptions
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _parse_max_errors(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    try:
        n = int(str(value).strip())
    except ValueError:
        return None
    return n if n >= 0 else None


def validate_cli_options(options: CLIOptions) -> CLIValidationResult:
    # Normalize-and-report: a bad value is replaced by a safe default so the run can go on
    errors: list[str] = []
    warnings: list[str] = []
    normalized = replace(options)

    if normalized.output_format is not None and normalized.output_format not in OUTPUT_FORMATS:
        errors.append(f"Invalid output format '{normalized.output_format}' {list(OUTPUT_FORMATS)}, using console")
        normalized.output_format = 'console'

    if normalized.file_ordering is not None and normalized.file_ordering not in FILE_ORDERINGS:
        errors.append(f"Invalid file ordering '{normalized.file_ordering}' {list(FILE_ORDERINGS)}, using alphabetical")
        normalized.file_ordering = 'alphabetical'

    if normalized.max_errors is not None:
        n = _parse_max_errors(normalized.max_errors)
        if n is None:
            errors.append(f"Invalid max errors '{normalized.max_errors}', must be a non-negative integer, using {DEFAULT_MAX_ERRORS}")
            n = DEFAULT_MAX_ERRORS
        elif n > 1000:
            warnings.append(f"Max errors {n} is above 1000, capped")
            n = 1000
        normalized.max_errors = n

    # Conflicts are explicit errors
    if normalized.dry_run and normalized.json_report:
        errors.append("--dry-run conflicts with --json-report, no report will be written")
        normalized.json_report = None
    if normalized.sequential and normalized.parallel:
        errors.append("--sequential conflicts with --parallel, using sequential")
        normalized.parallel = False

    if normalized.output_format in ('json', 'both') and not normalized.json_report and not normalized.dry_run:
        warnings.append("JSON output without --json-report, the report goes to stdout")
    if normalized.json_report and normalized.output_format is None:
        normalized.output_format = 'both'
    if normalized.show_progress is False and (normalized.show_eta or normalized.show_throughput):
        warnings.append("--show-eta/--show-throughput have no effect without progress display")
    if normalized.continue_on_error is False and normalized.max_errors is not None:
        warnings.append("--max-errors has no effect when stopping on the first error")

    return CLIValidationResult(normalized, errors, warnings)


def map_cli_to_overrides(options: CLIOptions) -> dict[str, Any]:
    # Only flags actually given become overrides
    overrides: dict[str, Any] = {}
    if options.sequential:
        overrides['sequential'] = True
    if options.parallel:
        overrides['parallel'] = True

    progress: dict[str, Any] = {}
    if options.show_progress is not None:
        progress['enabled'] = options.show_progress
    if options.show_eta is not None:
        progress['show_eta'] = options.show_eta
    if options.show_throughput is not None:
        progress['show_throughput'] = options.show_throughput
    if progress:
        overrides['progress_display'] = progress

    errors: dict[str, Any] = {}
    if options.continue_on_error is not None:
        errors['continue_on_error'] = options.continue_on_error
    if options.max_errors is not None:
        errors['max_errors'] = options.max_errors
    if errors:
        overrides['error_handling'] = errors

    reporting: dict[str, Any] = {}
    if options.output_format is not None:
        reporting['output_format'] = options.output_format
    if options.json_report:
        reporting['json_report_path'] = options.json_report
    if options.group_by_directory:
        reporting['group_by_directory'] = True
    if options.file_ordering is not None:
        reporting['file_ordering'] = options.file_ordering
    if reporting:
        overrides['reporting'] = reporting

    if options.dry_run:
        overrides['dry_run'] = {'enabled': True}
    return overrides
