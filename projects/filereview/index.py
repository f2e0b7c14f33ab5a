#\% Public facing interface:
#\% - Abstract class and methods only except static method(s), providing all context (without implementation) for callers
#\% - Static factory method(s)

from typing import Any
from abc import ABC, abstractmethod
from .model import ReviewCommand, ReviewRun


class FileReview(ABC):
    @abstractmethod
    def collect(self, command: ReviewCommand) -> list[str]:
        # Resolve command targets (files, directories, glob patterns, git changes) into an ordered, deduplicated file list
        pass

    @abstractmethod
    def plan(self, files: list[str]) -> Any:
        # Build a non-executing AnalysisPlan (accessible files, skipped files, estimated duration)
        pass

    @abstractmethod
    def run(self, command: ReviewCommand) -> ReviewRun:
        # Collect, pick a processing mode, process files and build/save the report; dry-run only plans
        pass

    @staticmethod
    def create(processor: Any, config: Any = None, renderer: Any = None) -> "FileReview":
        # Factory method returning the default implementation while keeping the import local to dodge circular dependencies
        # processor: FileProcessor; config: SequentialProcessingConfig (None loads defaults); renderer: ProgressRenderer override
        from .filereview import TheFileReview
        return TheFileReview(processor, config, renderer)
