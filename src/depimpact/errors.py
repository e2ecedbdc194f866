"""Error types shared across the analyzer."""

from __future__ import annotations

from typing import Any


class DepImpactError(Exception):
    """Base exception for depimpact errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            **self.context,
        }


class AnalysisError(DepImpactError):
    """The analysis could not run at all (entry file unreachable)."""


class ParseError(DepImpactError):
    """A single file could not be read or parsed."""

    def __init__(self, message: str, file_path: str, **context: Any) -> None:
        super().__init__(message, file_path=file_path, **context)
        self.file_path = file_path


class WorkerError(DepImpactError):
    """An isolated analysis worker reported or caused a failure."""
