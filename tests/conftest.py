import pytest

from projects.filereview.architecture import FileProcessor, ProgressRenderer


class FakeProcessor(FileProcessor):
    def __init__(self, fail=(), outcome=None, outcomes=None):
        self.fail = set(fail)
        self.outcome = outcome if outcome is not None else {"grade": "A", "state": "pass", "issues": []}
        self.outcomes = outcomes or {}
        self.calls: list[str] = []

    def supports(self, file_path):
        return True

    def process_file(self, file_path):
        self.calls.append(file_path)
        if file_path in self.fail or "*" in self.fail:
            raise RuntimeError(f"boom: {file_path}")
        return self.outcomes.get(file_path, self.outcome)


class RecordingRenderer(ProgressRenderer):
    def __init__(self, raise_on=None):
        self.calls: list[tuple] = []
        self.raise_on = raise_on

    def _record(self, *call):
        self.calls.append(call)
        if call[0] == self.raise_on:
            raise RuntimeError(f"renderer failed in {call[0]}")

    def start(self, total):
        self._record("start", total)

    def update_progress(self, file, completed, total):
        self._record("update_progress", file, completed, total)

    def update_file_status(self, file, status):
        self._record("update_file_status", file, status)

    def complete(self):
        self._record("complete")

    def error(self, file, message):
        self._record("error", file, message)

    def cleanup(self):
        self._record("cleanup")

    def names(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def make_tree(tmp_path):
    def _make(paths, content="x = 1\n"):
        created = []
        for rel in paths:
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
            created.append(str(path))
        return created

    return _make
