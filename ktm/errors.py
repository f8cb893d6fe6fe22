"""Exceptions raised by the matching engine."""

from typing import Optional


class KTMError(Exception):
    """Base class for every error the engine raises."""


class MalformedLogData(KTMError, ValueError):
    """A movement log could not be turned into a template library."""

    def __init__(self, message: str, path: Optional[str] = None, path_id: Optional[int] = None):
        self.path = path
        self.path_id = path_id
        where = []
        if path is not None:
            where.append(str(path))
        if path_id is not None:
            where.append(f"path {path_id}")
        if where:
            message = f"{', '.join(where)}: {message}"
        super().__init__(message)


class InsufficientData(KTMError):
    """Not enough points to derive a direction or a velocity profile."""


class EmptyLibrary(KTMError):
    """Nearest-neighbour search against a library without templates."""


class IncompatibleLibrary(KTMError, ValueError):
    """Profiles resampled or smoothed with different settings cannot be compared."""
