import json
import logging
from typing import Any
from pathlib import Path
from .llm import CliLLM
from .static import language_of
from .architecture import FileProcessor
from .model import AnalysisOutcome

logger = logging.getLogger(__name__)

GRADES = ('A', 'B', 'C', 'D', 'F')
STATES = ('pass', 'warning', 'fail')
SEVERITIES = ('error', 'warning', 'info')


class AIFileProcessor(FileProcessor):
    # Reviews one file per AI cli call; stateless per call, so it can run in parallel
    def __init__(self, ai: str, timeout: int = 0, lang: str = '', tmp: str | None = None):
        self.cli = CliLLM.create(ai, tmp)
        self.timeout = timeout
        self.lang = lang or 'English'
        path = Path(__file__).resolve().parent / 'prompts' / 'filereview.md'
        self.system_prompt = path.read_text(encoding='utf-8').replace('<lang>', self.lang)

    def supports(self, file_path: str) -> bool:
        return language_of(file_path) is not None

    def process_file(self, file_path: str) -> AnalysisOutcome:
        source = Path(file_path).read_text(encoding='utf-8')
        request = {
            'path': str(Path(file_path).as_posix()),
            'programming_language': language_of(file_path) or 'unknown',
            'comment_language': self.lang,
            'source': source,
        }
        user_prompt = json.dumps(request, indent=2, ensure_ascii=False)
        data = self.cli.exec(self.system_prompt, user_prompt, self.timeout)
        return self._data_check(data)

    def _data_check(self, data: dict[str, Any]) -> AnalysisOutcome:
        if isinstance(data.get('error'), str) and data['error'].strip():
            raise ValueError(f"AI reported an error: {data['error']}")

        grade = data.get('grade')
        if not isinstance(grade, str) or grade.strip().upper() not in GRADES:
            raise ValueError(f"<grade> must be one of {list(GRADES)}, got {grade!r}")
        state = data.get('state')
        if not isinstance(state, str) or state.strip().lower() not in STATES:
            raise ValueError(f"<state> must be one of {list(STATES)}, got {state!r}")

        issues = data.get('issues') or []
        if not isinstance(issues, list):
            raise ValueError("<issues> must be a list")
        normalized = []
        for issue in issues:
            if isinstance(issue, str):
                issue = {'message': issue}
            if not isinstance(issue, dict) or not issue.get('message'):
                raise ValueError(f"Malformed issue: {issue!r}")
            severity = str(issue.get('severity', 'info')).lower()
            issue['severity'] = severity if severity in SEVERITIES else 'info'
            issue.setdefault('type', 'general')
            normalized.append(issue)

        metrics = data.get('metrics') or {}
        if not isinstance(metrics, dict):
            logger.warning("dropping non-object <metrics>: %r", metrics)
            metrics = {}
        return AnalysisOutcome(
            grade=grade.strip().upper(),
            state=state.strip().lower(),
            issues=normalized,
            metrics=metrics,
            extra={k: v for k, v in data.items() if k in ('summary',)},
        )
