import logging
from dataclasses import dataclass, field
from .architecture import FileProcessor
from .model import ProcessingResults
from .processor import ProcessingOptions
from .grouping import GroupResult, GroupSummary, NestedFileProcessor, run_groups, summarize

logger = logging.getLogger(__name__)

SORT_DIRECTORIES = ('alphabetical', 'file_count', 'depth')


@dataclass
class DirectoryGroupingOptions:
    show_directory_tree: bool = True
    sort_directories: str | None = None  # None keeps first-seen order
    exclude_directories: list[str] = field(default_factory=list)
    include_only_directories: list[str] = field(default_factory=list)
    root: str | None = None


@dataclass
class DirectoryGroup:
    name: str  # posix path relative to root, '.' for root
    files: list[str]
    depth: int
    parent: str | None
    children: list[str] = field(default_factory=list)


@dataclass
class DirectoryTree:
    name: str
    path: str
    files: list[str] = field(default_factory=list)
    children: dict[str, "DirectoryTree"] = field(default_factory=dict)

    def total_files(self) -> int:
        return len(self.files) + sum(child.total_files() for child in self.children.values())

    def iter_files(self):
        yield from self.files
        for child in self.children.values():
            yield from child.iter_files()


@dataclass
class DirectoryGroupedResults:
    groups: list[DirectoryGroup]
    excluded_directories: list[str]
    processing_order: list[str]
    group_results: list[GroupResult]
    overall_summary: GroupSummary
    results: ProcessingResults = field(default_factory=ProcessingResults)
    directory_tree: DirectoryTree | None = None
    processing_mode: str = 'grouped'

    @property
    def stop_reason(self) -> str | None:
        return self.results.stop_reason


def _segments(name: str) -> list[str]:
    return [] if name in ('', '.') else name.split('/')


def matches_directory(directory: str, rule: str) -> bool:
    # Segment-aware: 'src' covers 'src' and 'src/a' but not 'src2'
    rule = rule.replace('\\', '/').strip().strip('/')
    if rule in ('', '.'):
        return directory == '.'
    if rule.startswith('./'):
        rule = rule[2:]
    return directory == rule or directory.startswith(rule + '/')


def build_directory_tree(groups: list[DirectoryGroup]) -> DirectoryTree:
    # Mirror path segments; every grouped file lands on exactly one node
    root = DirectoryTree('.', '.')
    for group in groups:
        node = root
        for segment in _segments(group.name):
            path = segment if node.path == '.' else f"{node.path}/{segment}"
            node = node.children.setdefault(segment, DirectoryTree(segment, path))
        node.files.extend(group.files)
    return root


def render_directory_tree(tree: DirectoryTree) -> list[str]:
    def count(node: DirectoryTree) -> str:
        n = node.total_files()
        return f"{n} file" if n == 1 else f"{n} files"

    lines = [f"{tree.name} ({count(tree)})"]

    def walk(node: DirectoryTree, indent: str):
        children = list(node.children.values())
        for i, child in enumerate(children):
            last = i == len(children) - 1
            lines.append(f"{indent}{'└── ' if last else '├── '}{child.name}/ ({count(child)})")
            walk(child, indent + ('    ' if last else '│   '))

    walk(tree, '')
    return lines


class DirectoryGroupProcessor:
    def __init__(self):
        self.nested = NestedFileProcessor()

    def create_directory_groups(self, files: list[str], grouping: DirectoryGroupingOptions | None = None) -> tuple[list[DirectoryGroup], list[str]]:
        # Returns (surviving groups, excluded directory names)
        grouping = grouping or DirectoryGroupingOptions()
        partition = self.nested.group_files(files, 'directory', grouping.root)

        groups: list[DirectoryGroup] = []
        excluded: list[str] = []
        for name, members in partition.items():
            if any(matches_directory(name, rule) for rule in grouping.exclude_directories):
                excluded.append(name)
                continue
            if grouping.include_only_directories and not any(matches_directory(name, rule) for rule in grouping.include_only_directories):
                excluded.append(name)
                continue
            segments = _segments(name)
            parent = None if not segments else ('/'.join(segments[:-1]) or '.')
            groups.append(DirectoryGroup(name, members, len(segments), parent))

        names = {g.name for g in groups}
        for group in groups:
            if group.parent in names:
                next(g for g in groups if g.name == group.parent).children.append(group.name)
        if excluded:
            logger.debug("excluded directories: %s", ', '.join(excluded))
        return self.sort_directory_groups(groups, grouping.sort_directories), excluded

    @staticmethod
    def sort_directory_groups(groups: list[DirectoryGroup], sort_by: str | None) -> list[DirectoryGroup]:
        if sort_by is None:
            return list(groups)
        if sort_by == 'alphabetical':
            return sorted(groups, key=lambda g: g.name)
        if sort_by == 'file_count':
            return sorted(groups, key=lambda g: (-len(g.files), g.name))
        if sort_by == 'depth':
            return sorted(groups, key=lambda g: (g.depth, g.name))
        raise ValueError(f"Unsupported directory sort {sort_by} {list(SORT_DIRECTORIES)}")

    def process_files_with_directory_grouping(
        self,
        files: list[str],
        processor: FileProcessor,
        grouping: DirectoryGroupingOptions | None = None,
        options: ProcessingOptions | None = None,
    ) -> DirectoryGroupedResults:
        grouping = grouping or DirectoryGroupingOptions()
        groups, excluded = self.create_directory_groups(files, grouping)
        tree = build_directory_tree(groups) if grouping.show_directory_tree else None
        group_results, results = run_groups([(g.name, g.files) for g in groups], processor, options)
        return DirectoryGroupedResults(
            groups=groups,
            excluded_directories=excluded,
            processing_order=[g.name for g in groups],
            group_results=group_results,
            overall_summary=summarize(results),
            results=results,
            directory_tree=tree,
        )

    def process_with_grouping(self, pattern: str, processor: FileProcessor, grouping: DirectoryGroupingOptions | None = None, options: ProcessingOptions | None = None) -> DirectoryGroupedResults:
        grouping = grouping or DirectoryGroupingOptions()
        files = self.nested.expand_glob_pattern(pattern, grouping.root)
        return self.process_files_with_directory_grouping(files, processor, grouping, options)

    def process_multiple_directory_patterns(self, patterns: list[str], processor: FileProcessor, grouping: DirectoryGroupingOptions | None = None, options: ProcessingOptions | None = None) -> DirectoryGroupedResults:
        grouping = grouping or DirectoryGroupingOptions()
        files = self.nested.expand_patterns(patterns, grouping.root)
        return self.process_files_with_directory_grouping(files, processor, grouping, options)

    @staticmethod
    def get_directory_stats(grouped: DirectoryGroupedResults) -> dict[str, object]:
        groups = grouped.groups
        total = sum(len(g.files) for g in groups)
        largest = max(groups, key=lambda g: len(g.files), default=None)
        return {
            'total_directories': len(groups),
            'total_files': total,
            'average_files_per_directory': total / len(groups) if groups else 0.0,
            'max_depth': max((g.depth for g in groups), default=0),
            'largest_directory': largest.name if largest else None,
            'excluded_directories': len(grouped.excluded_directories),
            'success_rate': grouped.overall_summary.success_rate,
        }
