import logging
from typing import Any
from .model import ProcessingMode

logger = logging.getLogger(__name__)


class ProcessingModeSelector:
    # Policy only: the engine never branches on the chosen mode, callers do
    MODES = {
        'files': ProcessingMode.SEQUENTIAL,
        'directory': ProcessingMode.SEQUENTIAL,
        'pr': ProcessingMode.PARALLEL,
        'changes': ProcessingMode.PARALLEL,
    }

    @staticmethod
    def determine_processing_mode(command: Any) -> ProcessingMode:
        # Unknown command types fall back to SEQUENTIAL
        kind = getattr(command, 'type', None)
        mode = ProcessingModeSelector.MODES.get(kind, ProcessingMode.SEQUENTIAL)
        logger.debug("command type %r -> %s", kind, mode.value)
        return mode

    @staticmethod
    def determine_processing_mode_advanced(
        command: Any,
        file_count: int,
        force_sequential: bool = False,
        force_parallel: bool = False,
        sequential_threshold: int | None = None,
    ) -> ProcessingMode:
        # Precedence: force_sequential > force_parallel > threshold > command type
        if force_sequential:
            logger.debug("sequential mode forced")
            return ProcessingMode.SEQUENTIAL
        if force_parallel:
            logger.debug("parallel mode forced")
            return ProcessingMode.PARALLEL
        if sequential_threshold is not None:
            mode = ProcessingMode.SEQUENTIAL if file_count <= sequential_threshold else ProcessingMode.PARALLEL
            logger.debug("%d files against threshold %d -> %s", file_count, sequential_threshold, mode.value)
            return mode
        return ProcessingModeSelector.determine_processing_mode(command)
