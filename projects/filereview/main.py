#\% pip install -e .
#\% filereview src/ --sequential --max-errors 3 --json-report out/report.json

import os
import argparse
import logging
from .index import FileReview
from .architecture import FileProcessor
from .config import CLIOptions, SequentialProcessingConfig, map_cli_to_overrides, validate_cli_options
from .model import ProcessingMode, ReviewCommand, ReviewRun
from .directories import render_directory_tree
from .dryrun import render_plan
from .report import format_summary

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="filereview", description="Review files one at a time with an error budget and JSON reporting.")
    parser.add_argument("targets", nargs="*", help="Files, directories or glob patterns (default: current directory).")
    parser.add_argument("--processor", choices=["static", "claude", "codex"], default="static", help="Per-file analysis backend.")
    parser.add_argument("--changes", action="store_true", help="Review git modified, staged and untracked files under the targets.")
    parser.add_argument("--sequential", action="store_true", help="Force sequential processing.")
    parser.add_argument("--parallel", action="store_true", help="Force parallel processing.")
    parser.add_argument("--dry-run", action="store_true", help="Plan only: list files, skips and estimated duration.")
    parser.add_argument("--json-report", metavar="PATH", help="Write the JSON report to PATH.")
    parser.add_argument("--group-by-directory", action="store_true", help="Process files directory by directory.")
    # Free-form so bad values are normalized with an error instead of aborting
    parser.add_argument("--output-format", metavar="{console,json,both}", help="Summary output format.")
    parser.add_argument("--show-progress", action=argparse.BooleanOptionalAction, default=None, help="Render progress.")
    parser.add_argument("--show-eta", action=argparse.BooleanOptionalAction, default=None, help="Show estimated time remaining.")
    parser.add_argument("--show-throughput", action=argparse.BooleanOptionalAction, default=None, help="Show files per second.")
    parser.add_argument("--continue-on-error", action=argparse.BooleanOptionalAction, default=None, help="Keep going after a failed file.")
    parser.add_argument("--max-errors", metavar="N", help="Stop once N files have failed (0 stops before the first file).")
    parser.add_argument("--file-ordering", metavar="{alphabetical,size,modified,natural}", help="Processing order.")
    parser.add_argument("--config", help="JSON config file (default: ~/.filereview/config.json).")
    parser.add_argument("--timeout", "-t", type=int, default=0, help="AI cli timeout in seconds (0 = by prompt size).")
    parser.add_argument("--lang", "-l", type=str, default='', help="Language for AI findings.")
    parser.add_argument("--tmp", "-d", type=str, help="Directory to dump raw AI output.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")
    return parser


def command_of(targets: list[str], changes: bool) -> ReviewCommand:
    if changes:
        return ReviewCommand('changes', targets)
    if targets and all(os.path.isdir(t) for t in targets):
        return ReviewCommand('directory', targets)
    return ReviewCommand('files', targets)


def parallel_ignored(options: CLIOptions) -> list[str]:
    # Flags the thread-pool path has no use for
    flags = []
    if options.group_by_directory:
        flags.append("--group-by-directory")
    if options.max_errors is not None:
        flags.append("--max-errors")
    if options.continue_on_error is not None:
        flags.append("--continue-on-error")
    if options.show_progress:
        flags.append("--show-progress")
    return flags


def report_run(run: ReviewRun, config: SequentialProcessingConfig) -> None:
    if run.dry_run:
        for line in render_plan(run.plan):
            print(line)
        return

    if run.grouped is not None and run.grouped.directory_tree is not None:
        for line in render_directory_tree(run.grouped.directory_tree):
            print(line)
        if run.grouped.excluded_directories:
            print(f"Excluded: {', '.join(run.grouped.excluded_directories)}")

    output = config.reporting.output_format
    if output in ('console', 'both') or run.report is None:
        if run.report is not None:
            for line in format_summary(run.report):
                print(line)
        else:
            s = run.stats
            print(f"Processed {s.total} files: {s.successful} succeeded, {s.failed} failed")
            if s.warnings:
                print(f"Warnings: {s.warnings}")
        for result in run.results:
            if not result.success:
                print(f"[ERR] {result.file}: {result.error}")

    if run.report is not None and output in ('json', 'both'):
        if run.report_path:
            print(f"JSON report saved to {run.report_path}")
        else:
            print(run.report.to_json())

    if run.stop_reason:
        not_run = len(run.files) - len(run.results)
        print(f"[WARNING] {run.stop_reason} ({not_run} of {len(run.files)} files not processed)")


def main(argv: list[str]) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    validation = validate_cli_options(CLIOptions(
        sequential=args.sequential,
        parallel=args.parallel,
        dry_run=args.dry_run,
        json_report=args.json_report,
        group_by_directory=args.group_by_directory,
        output_format=args.output_format,
        show_progress=args.show_progress,
        show_eta=args.show_eta,
        show_throughput=args.show_throughput,
        continue_on_error=args.continue_on_error,
        max_errors=args.max_errors,
        file_ordering=args.file_ordering,
    ))
    for error in validation.errors:
        print(f"[ERR] {error}")
    for warning in validation.warnings:
        print(f"[WARNING] {warning}")

    config = SequentialProcessingConfig.load(args.config, **map_cli_to_overrides(validation.options))
    try:
        processor = FileProcessor.create(args.processor, args.timeout, args.lang, args.tmp)
        run = FileReview.create(processor, config).run(command_of(args.targets, args.changes))
    except ValueError as e:
        print(f"[ERR] {e}")
        return -1

    ignored = parallel_ignored(validation.options)
    if run.mode == ProcessingMode.PARALLEL and not run.dry_run and ignored:
        print(f"[WARNING] parallel mode ignores {', '.join(ignored)}")
    report_run(run, config)
    if run.dry_run:
        return 0
    return 0 if run.stats.failed == 0 else 1


def cli() -> None:
    import sys as _sys
    _sys.exit(main(_sys.argv[1:]))


if __name__ == "__main__":
    cli()
