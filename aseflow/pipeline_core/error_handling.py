"""
Error handling utilities for the scheduler.

This module provides:
- Custom exception classes for the error kinds the scheduler distinguishes
- A context manager that turns unexpected failures inside a stage into
  ``StageExecutionError``
- Output directory validation used before scripts are written
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base exception for all scheduler errors."""

    def __init__(self, message: str, stage: Optional[str] = None, details: Optional[Dict] = None):
        """Initialize pipeline error.

        Parameters
        ----------
        message : str
            Error message
        stage : str, optional
            Stage where error occurred
        details : dict, optional
            Additional error details
        """
        super().__init__(message)
        self.stage = stage
        self.details = details or {}


class ManifestError(PipelineError):
    """Raised when the cases manifest cannot be read or is inconsistent."""

    def __init__(self, manifest_path: Union[str, Path], reason: str):
        """Initialize manifest error."""
        message = f"Unusable cases manifest {manifest_path}: {reason}"
        super().__init__(message, None, {"file": str(manifest_path), "reason": reason})


class FileFormatError(PipelineError):
    """Raised when a path has the wrong kind or format."""

    def __init__(self, file_path: str, expected_format: str, stage: Optional[str] = None):
        """Initialize file format error."""
        message = f"Invalid file format for {file_path}. Expected: {expected_format}"
        super().__init__(message, stage, {"file": file_path, "expected_format": expected_format})


class BatchingError(PipelineError):
    """Raised when ready work cannot be packed under the line-length cap."""

    def __init__(self, message: str, stage: Optional[str] = None, max_chars: int = 0):
        """Initialize batching error."""
        super().__init__(message, stage, {"max_chars": max_chars})


class FreshnessCheckFailed(PipelineError):
    """Raised when the freshness check finds outputs older than their inputs."""

    def __init__(self, violations: List):
        """Initialize with the list of ``FreshnessViolation`` records found."""
        stages = sorted({v.stage for v in violations})
        message = (
            f"Dependency freshness check failed with {len(violations)} violation(s) "
            f"in stage(s): {', '.join(stages)}"
        )
        super().__init__(message, None, {"violation_count": len(violations)})
        self.violations = list(violations)

    def __reduce__(self):
        """Pickle with the violations as the sole constructor argument."""
        return (self.__class__, (self.violations,), self.__dict__)


class StageExecutionError(PipelineError):
    """Raised when a stage fails while being evaluated."""

    def __init__(self, stage_name: str, original_error: Exception):
        """Initialize stage execution error."""
        message = f"Stage '{stage_name}' failed: {str(original_error)}"
        super().__init__(
            message,
            stage_name,
            {
                "original_error": str(original_error),
                "error_type": type(original_error).__name__,
            },
        )
        self.original_error = original_error

    def __reduce__(self):
        """Custom pickling so the error survives a round trip."""
        return (self.__class__, (self.stage, self.original_error), self.__dict__)


@contextmanager
def graceful_error_handling(stage_name: str, logger: Optional[logging.Logger] = None):
    """Context manager that wraps failures inside a stage.

    ``PipelineError`` subclasses pass through unchanged. Anything else is
    logged and re-raised as ``StageExecutionError`` carrying the stage name.

    Parameters
    ----------
    stage_name : str
        Name of the stage for error reporting
    logger : logging.Logger, optional
        Logger instance

    Examples
    --------
    >>> with graceful_error_handling("Allcount (tumor DNA)"):
    ...     # Stage evaluation code
    ...     pass
    """
    _logger = logger or logging.getLogger(__name__)

    try:
        yield
    except PipelineError:
        # Pipeline errors are already formatted nicely
        raise
    except FileNotFoundError as e:
        _logger.error(f"File not found in {stage_name}: {e}")
        raise StageExecutionError(stage_name, e)
    except Exception as e:
        _logger.error(f"Unexpected error in {stage_name}: {e}", exc_info=True)
        raise StageExecutionError(stage_name, e)


def validate_output_directory(
    output_dir: Union[str, Path], stage_name: str, create: bool = True
) -> Path:
    """Validate output directory.

    Parameters
    ----------
    output_dir : str or Path
        Output directory path
    stage_name : str
        Name used for error reporting
    create : bool
        Whether to create directory if it doesn't exist

    Returns
    -------
    Path
        Validated directory path

    Raises
    ------
    PermissionError
        If directory cannot be created or written to
    """
    path = Path(output_dir)

    if path.exists():
        if not path.is_dir():
            raise FileFormatError(str(path), "directory", stage_name)
    elif create:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            raise PermissionError(f"Cannot create directory: {path}")
    else:
        raise FileNotFoundError(f"Output directory does not exist: {path}")

    test_file = path / ".write_test"
    try:
        test_file.touch()
        test_file.unlink()
    except PermissionError:
        raise PermissionError(f"Cannot write to directory: {path}")

    return path
