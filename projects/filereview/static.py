import os
import logging
from typing import Any
from tree_sitter_language_pack import get_parser
from .architecture import FileProcessor
from .model import AnalysisOutcome

logger = logging.getLogger(__name__)

EXT2LANG = {
    '.py': 'python',
    '.js': 'javascript',
    '.mjs': 'javascript',
    '.jsx': 'javascript',
    '.ts': 'typescript',
    '.tsx': 'tsx',
    '.java': 'java',
    '.c': 'c',
    '.h': 'c',
    '.cc': 'cpp',
    '.cpp': 'cpp',
    '.hpp': 'cpp',
    '.cs': 'csharp',
    '.go': 'go',
    '.rs': 'rust',
    '.sh': 'bash',
    '.html': 'html',
}

FUNCTION_NODES = {
    'function_definition', 'function_declaration', 'function_item', 'method_definition',
    'method_declaration', 'constructor_declaration', 'arrow_function', 'function_expression',
    'local_function_statement',
}

LONG_LINE = 120
MAX_REPORTED = 20  # per issue kind
MARKERS = ('TODO', 'FIXME', 'XXX')


def language_of(file_path: str) -> str | None:
    _, ext = os.path.splitext(file_path)
    return EXT2LANG.get(ext.lower())


def grade_of(score: int) -> str:
    for grade, floor in (('A', 90), ('B', 80), ('C', 70), ('D', 60)):
        if score >= floor:
            return grade
    return 'F'


class StaticFileProcessor(FileProcessor):
    # Syntax and hygiene check over a tree-sitter parse; no network, no AI.
    # A fresh parser per file keeps it safe for the parallel path.

    def supports(self, file_path: str) -> bool:
        return language_of(file_path) is not None

    def process_file(self, file_path: str) -> AnalysisOutcome:
        lang = language_of(file_path)
        if lang is None:
            raise ValueError(f"Unsupported file type: {file_path}")
        with open(file_path, 'rb') as f:
            source = f.read()
        try:
            text = source.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ValueError(f"{file_path} is not UTF-8: {e}") from e

        tree = get_parser(lang).parse(source)
        issues: list[dict[str, Any]] = []
        counts = self._walk(tree.root_node, issues)
        lines = text.splitlines()
        issues.extend(self._line_issues(lines))

        blank = sum(1 for line in lines if not line.strip())
        code_lines = max(0, len(lines) - blank - counts['comment_lines'])
        metrics = {
            'language': lang,
            'lines': len(lines),
            'code_lines': code_lines,
            'comment_lines': counts['comment_lines'],
            'comment_ratio': round(counts['comment_lines'] / len(lines), 3) if lines else 0.0,
            'functions': counts['functions'],
            'syntax_errors': counts['errors'],
            'max_line_length': max((len(line) for line in lines), default=0),
        }
        if code_lines > 50 and metrics['comment_ratio'] < 0.05:
            issues.append({'line': 1, 'severity': 'warning', 'type': 'documentation', 'message': 'Few or no comments'})

        return self._grade(issues, metrics)

    def _walk(self, root: Any, issues: list[dict[str, Any]]) -> dict[str, int]:
        counts = {'errors': 0, 'functions': 0, 'comment_lines': 0}
        comment_rows: set[int] = set()
        stack = [root]
        while stack:
            node = stack.pop()
            line = node.start_point[0] + 1
            if node.type == 'ERROR':
                counts['errors'] += 1
                if counts['errors'] <= MAX_REPORTED:
                    issues.append({'line': line, 'severity': 'error', 'type': 'syntax', 'message': 'Syntax error'})
            elif node.is_missing:
                counts['errors'] += 1
                if counts['errors'] <= MAX_REPORTED:
                    issues.append({'line': line, 'severity': 'error', 'type': 'syntax', 'message': f"Missing {node.type}"})
            elif 'comment' in node.type:
                comment_rows.update(range(node.start_point[0], node.end_point[0] + 1))
            elif node.type in FUNCTION_NODES:
                counts['functions'] += 1
            stack.extend(reversed(node.children))
        counts['comment_lines'] = len(comment_rows)
        return counts

    def _line_issues(self, lines: list[str]) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        long_lines = [i + 1 for i, line in enumerate(lines) if len(line) > LONG_LINE]
        for n in long_lines[:MAX_REPORTED]:
            issues.append({'line': n, 'severity': 'info', 'type': 'style', 'message': f"Line longer than {LONG_LINE} characters"})
        markers = [i + 1 for i, line in enumerate(lines) if any(m in line for m in MARKERS)]
        for n in markers[:MAX_REPORTED]:
            issues.append({'line': n, 'severity': 'info', 'type': 'maintenance', 'message': 'Unresolved TODO/FIXME marker'})
        return issues

    def _grade(self, issues: list[dict[str, Any]], metrics: dict[str, Any]) -> AnalysisOutcome:
        errors = metrics['syntax_errors']
        warnings = sum(1 for i in issues if i['severity'] == 'warning')
        infos = sum(1 for i in issues if i['severity'] == 'info')
        if errors:
            grade = 'D' if errors == 1 else 'F'
            state = 'fail'
        else:
            grade = grade_of(100 - 10 * warnings - min(infos, 20))
            state = 'warning' if warnings else 'pass'
        return AnalysisOutcome(grade=grade, state=state, issues=issues, metrics=metrics)
