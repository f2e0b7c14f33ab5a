import json
import subprocess
from types import SimpleNamespace

import pytest

from projects.filereview import llm
from projects.filereview.architecture import FileProcessor
from projects.filereview.llm import CliLLM, ClaudeCli, CodexCli, extract_json, strip_fence
from projects.filereview.model import FileStatus
from projects.filereview.processor import SequentialFileProcessor
from projects.filereview.reviewer import AIFileProcessor


def test_strip_fence():
    assert strip_fence('text ```json\n{"a": 1}\n``` tail') == '\n{"a": 1}\n'
    assert strip_fence("no fence") is None
    assert strip_fence("") is None
    assert strip_fence("```json unterminated") is None


def test_extract_json():
    assert extract_json('noise {"a": {"b": 2}} noise') == {"a": {"b": 2}}
    for bad in ("", "   ", "no object", "{broken", "} {"):
        with pytest.raises(ValueError):
            extract_json(bad)


def test_timeout_scales_with_prompt_size():
    cli = CliLLM.create("claude")
    assert cli.timeout("s", "u", 5) == 5
    assert cli.timeout("x" * 1024, "", 0) == 300 + 60
    assert cli.timeout("x" * 2048, "", -10) == 300 + 20


def test_create_rejects_unknown_cli():
    with pytest.raises(ValueError):
        CliLLM.create("gpt")


def test_claude_answer_parsing():
    cli = ClaudeCli()
    fenced = json.dumps({"result": 'Here:\n```json\n{"grade": "A"}\n```'})
    assert json.loads(cli._answer(fenced)) == {"grade": "A"}
    assert cli._answer(json.dumps({"result": '{"grade": "B"}'})) == '{"grade": "B"}'
    assert cli._answer("not json") is None
    assert cli._answer(json.dumps({"result": ""})) is None


def test_codex_answer_parsing():
    cli = CodexCli()
    stream = "\n".join([
        json.dumps({"type": "thread.started"}),
        "garbage",
        json.dumps({"type": "item.completed", "item": {"type": "agent_message", "text": '{"grade": "C"}'}}),
    ])
    assert cli._answer(stream) == '{"grade": "C"}'
    assert cli._answer(json.dumps({"msg": {"type": "agent_message", "message": "```json\n{}\n```"}})) == "\n{}\n"
    assert cli._answer("") is None


def fake_run(returncode=0, stdout="", stderr="", raises=None):
    def _run(args, **kwargs):
        if raises is not None:
            raise raises
        return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)
    return _run


def test_exec_returns_parsed_answer(monkeypatch, tmp_path):
    monkeypatch.setattr(llm.subprocess, "run", fake_run(stdout=json.dumps({"result": '{"grade": "A"}'})))
    cli = ClaudeCli(str(tmp_path))
    assert cli.exec("system", "user") == {"grade": "A"}
    assert (tmp_path / "claude.stdout.txt").exists()


def test_exec_falls_back_to_raw_output(monkeypatch):
    monkeypatch.setattr(llm.subprocess, "run", fake_run(stdout='log line\n```json\n{"grade": "B"}\n```'))
    assert ClaudeCli().exec("system", "user") == {"grade": "B"}


@pytest.mark.parametrize("run", [
    fake_run(returncode=2, stderr="bad flag"),
    fake_run(raises=subprocess.TimeoutExpired("claude", 1)),
    fake_run(raises=FileNotFoundError("claude")),
    fake_run(stdout=json.dumps({"result": "no json here"})),
])
def test_exec_failures_raise_value_error(monkeypatch, run):
    monkeypatch.setattr(llm.subprocess, "run", run)
    with pytest.raises(ValueError):
        ClaudeCli().exec("system", "user")


@pytest.fixture
def reviewer(monkeypatch):
    processor = AIFileProcessor("claude", lang="French")
    answers = {}
    monkeypatch.setattr(processor.cli, "exec", lambda system, user, timeout=0: answers["next"])
    return processor, answers


def test_reviewer_builds_request_and_normalizes(tmp_path, monkeypatch):
    processor = AIFileProcessor("claude", lang="French")
    seen = {}

    def exec_(system, user, timeout=0):
        seen["system"], seen["user"] = system, json.loads(user)
        return {
            "grade": " b ",
            "state": "WARNING",
            "summary": "mostly fine",
            "issues": ["plain text", {"message": "shadowed name", "severity": "CRITICAL"}],
            "metrics": {"coverage": 70},
        }

    monkeypatch.setattr(processor.cli, "exec", exec_)
    source = tmp_path / "mod.py"
    source.write_text("x = 1\n")

    outcome = processor.process_file(str(source))

    assert seen["user"]["programming_language"] == "python"
    assert seen["user"]["comment_language"] == "French"
    assert seen["user"]["source"] == "x = 1\n"
    assert "French" in seen["system"]
    assert outcome.grade == "B"
    assert outcome.state == "warning"
    assert outcome.issues == [
        {"message": "plain text", "severity": "info", "type": "general"},
        {"message": "shadowed name", "severity": "info", "type": "general"},
    ]
    assert outcome.coverage == 70.0
    assert outcome.extra == {"summary": "mostly fine"}


@pytest.mark.parametrize("answer", [
    {"error": "cannot read file"},
    {"grade": "Z", "state": "pass"},
    {"grade": "A", "state": "great"},
    {"grade": "A", "state": "pass", "issues": "none"},
    {"grade": "A", "state": "pass", "issues": [{"severity": "info"}]},
])
def test_reviewer_rejects_bad_answers(reviewer, answer):
    processor, answers = reviewer
    answers["next"] = answer
    with pytest.raises(ValueError):
        processor._data_check(answer)


def test_reviewer_failures_become_file_errors(reviewer, tmp_path):
    processor, answers = reviewer
    answers["next"] = {"grade": "Z", "state": "pass"}
    source = tmp_path / "mod.py"
    source.write_text("x = 1\n")

    results = SequentialFileProcessor().process_files([str(source)], processor)

    assert results[0].status == FileStatus.ERROR
    assert "<grade>" in str(results[0].error)


def test_factory_builds_ai_processors():
    assert isinstance(FileProcessor.create("codex"), AIFileProcessor)
    assert FileProcessor.create("claude").cli.ai() == "claude"
