#\% Architecture breakdown of sub-modules consumed by the engine:
#\% - Abstract class and methods only except static method(s), providing all context (without implementation) for callers
#\% - Static factory method(s)

from typing import Any
from abc import ABC, abstractmethod
from .model import FileStatus


class FileProcessor(ABC):
    # Single-file analysis capability injected into the engine; opaque to it.

    @abstractmethod
    def supports(self, file_path: str) -> bool:
        # Whether files discovered under a directory target should be handed to process_file.
        pass

    @abstractmethod
    def process_file(self, file_path: str) -> Any:
        # Analyze one file and return its outcome (expected shape: grade, state, issues, metrics).
        # Raise on failure; the engine turns every exception into an ERROR result.
        # Must be thread-safe when the caller picks PARALLEL mode.
        pass

    @staticmethod
    def create(kind: str, timeout: int = 0, lang: str = '', tmp: str | None = None) -> "FileProcessor":
        # Factory helper that prevents circular imports.
        # kind: 'static' (tree-sitter checks) or an AI cli name ('claude', 'codex').
        if kind == 'static':
            from .static import StaticFileProcessor
            return StaticFileProcessor()
        from .reviewer import AIFileProcessor
        return AIFileProcessor(kind, timeout, lang, tmp)


class ProgressRenderer(ABC):
    # Optional sink for progress output; cleanup() is guaranteed to run once start() was attempted.

    @abstractmethod
    def start(self, total: int) -> None:
        pass

    @abstractmethod
    def update_progress(self, file: str, completed: int, total: int) -> None:
        pass

    @abstractmethod
    def update_file_status(self, file: str, status: FileStatus) -> None:
        pass

    @abstractmethod
    def complete(self) -> None:
        # Called once after the loop, on normal end and on early stop alike.
        pass

    @abstractmethod
    def error(self, file: str, message: str) -> None:
        pass

    @abstractmethod
    def cleanup(self) -> None:
        # Release the terminal (newline, cursor); must be idempotent.
        pass

    @staticmethod
    def create(config: Any = None, isatty: bool | None = None) -> "ProgressRenderer":
        # Factory helper that prevents circular imports.
        # config: ProgressDisplayConfig or None for defaults; isatty=None detects stderr.
        from .renderer import create_renderer
        return create_renderer(config, isatty)
