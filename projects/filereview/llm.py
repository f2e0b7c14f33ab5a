import os
import json
import shutil
import logging
import subprocess
from typing import Any
from pathlib import Path
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

BASE_TIMEOUT = 300  # seconds for cli startup, network and cleanup
PER_KB_TIMEOUT = 60  # seconds per KB of prompt


class CliLLM(ABC):
    # An AI coding cli driven through subprocess; the answer must contain one JSON object.
    # Failures raise ValueError so the engine records them as per-file errors.

    def __init__(self, tmp: str | None = None):
        self.tmp = Path(tmp) if tmp else None

    @abstractmethod
    def ai(self) -> str:
        pass

    @abstractmethod
    def _args(self, system_prompt: str, user_prompt: str) -> tuple[list[str], str]:
        # cli arguments plus the stdin payload; prompts go through stdin to dodge command-line length limits
        pass

    @abstractmethod
    def _answer(self, stdout: str) -> str | None:
        # Pull the model's answer text out of the cli output, None if absent
        pass

    def timeout(self, system_prompt: str, user_prompt: str, timeout: int = 0) -> int:
        # timeout>0: used as is; 0: default per-KB budget; <0: abs value as per-KB budget
        if timeout > 0:
            return timeout
        per_kb = PER_KB_TIMEOUT if timeout == 0 else -timeout
        return BASE_TIMEOUT + per_kb * (len(system_prompt + user_prompt) >> 10)

    def exec(self, system_prompt: str, user_prompt: str, timeout: int = 0) -> dict[str, Any]:
        args, stdin_prompt = self._args(system_prompt, user_prompt)
        seconds = self.timeout(system_prompt, user_prompt, timeout)
        logger.debug("%s: %d bytes of prompt, timeout %ds", self.ai(), len(stdin_prompt), seconds)
        try:
            completed = subprocess.run(args, capture_output=True, text=True, timeout=seconds, input=stdin_prompt)
        except subprocess.TimeoutExpired as e:
            raise ValueError(f"{self.ai()} timed out after {seconds}s") from e
        except OSError as e:
            raise ValueError(f"{self.ai()} could not be started: {e}") from e

        if completed.returncode != 0:
            stderr = completed.stderr[:2000] if completed.stderr else "no stderr"
            raise ValueError(f"{self.ai()} exited with {completed.returncode}: {stderr}")
        self._dump('stdout.txt', completed.stdout)

        answer = self._answer(completed.stdout)
        if answer is None:
            logger.warning("%s: no structured answer, searching raw output for a fenced payload", self.ai())
            answer = strip_fence(completed.stdout) or completed.stdout
        return extract_json(answer)

    def _dump(self, fn: str, text: str) -> None:
        # Debug copy of raw output when a tmp directory is configured
        if not self.tmp:
            return
        try:
            (self.tmp / f"{self.ai()}.{fn}").write_text(text, encoding='utf-8')
        except OSError as e:
            logger.debug("dump %s failed: %s", fn, e)

    @staticmethod
    def create(ai: str, tmp: str | None = None) -> "CliLLM":
        if ai == 'claude':
            return ClaudeCli(tmp)
        if ai == 'codex':
            return CodexCli(tmp)
        raise ValueError(f"Unsupported AI [claude, codex]: {ai}")


def strip_fence(text: str, prefix: str = '```json', suffix: str = '```') -> str | None:
    # Content between the first prefix and the last suffix
    if not text:
        return None
    i = text.find(prefix)
    if i < 0:
        return None
    text = text[i + len(prefix):]
    j = text.rfind(suffix)
    return text[:j] if j >= 0 else None


def extract_json(payload: str) -> dict[str, Any]:
    # Single object between the first '{' and the last '}'
    payload = (payload or '').strip()
    if not payload:
        raise ValueError("Empty AI answer")
    i = payload.find('{')
    j = payload.rfind('}')
    if i < 0 or j < i:
        raise ValueError("No JSON object in AI answer")
    try:
        data = json.loads(payload[i:j + 1])
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in AI answer: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("AI answer is not a JSON object")
    return data


def _entry(name: str, *js: str) -> list[str]:
    # Prefer `node <cli.js>` under the npm layout, then the binary, then PATH lookup
    binary = shutil.which(name)
    node = shutil.which('node')
    if binary and node:
        script = Path(binary).resolve().parent.joinpath('node_modules', *js)
        if script.exists():
            return [node, str(script)]
    return [binary or name]


class ClaudeCli(CliLLM):
    def ai(self) -> str:
        return 'claude'

    def _args(self, system_prompt: str, user_prompt: str) -> tuple[list[str], str]:
        args = _entry('claude', '@anthropic-ai', 'claude-code', 'cli.js') + [
            '--print', '--output-format', 'json', '--append-system-prompt', system_prompt,
        ]
        # Root may not skip permissions; acceptEdits keeps file reads under cwd
        is_root = os.getuid() == 0 if hasattr(os, 'getuid') else False
        args += ['--permission-mode', 'acceptEdits'] if is_root else ['--dangerously-skip-permissions']
        args.append('-')
        return args, user_prompt

    def _answer(self, stdout: str) -> str | None:
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError:
            return None
        result = data.get('result') if isinstance(data, dict) else None
        if not isinstance(result, str) or not result.strip():
            return None
        return strip_fence(result) or result


class CodexCli(CliLLM):
    def ai(self) -> str:
        return 'codex'

    def _args(self, system_prompt: str, user_prompt: str) -> tuple[list[str], str]:
        args = _entry('codex', '@openai', 'codex', 'bin', 'codex.js') + [
            'exec', '--dangerously-bypass-approvals-and-sandbox', '--skip-git-repo-check', '--json', '-',
        ]
        return args, system_prompt + '\n' + user_prompt

    def _answer(self, stdout: str) -> str | None:
        # JSON event stream; the first agent message carries the answer
        for line in stdout.splitlines():
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(event, dict):
                continue
            text = None
            item = event.get('item')
            msg = event.get('msg')
            if event.get('type') == 'item.completed' and isinstance(item, dict) and item.get('type') == 'agent_message':
                text = item.get('text')
            elif isinstance(msg, dict) and msg.get('type') == 'agent_message':
                text = msg.get('message')
            if isinstance(text, str) and text.strip():
                return strip_fence(text) or text
        return None
