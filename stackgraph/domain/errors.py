"""
Toolkit Errors

Architectural Intent:
- Single error hierarchy for configuration and scheduling failures
- Operation failures raised by injected callbacks are NOT wrapped; they
  propagate unchanged so callers can inspect the original exception
- Errors carry a type and a source so callers can tell toolkit bugs from
  user input problems
"""

from __future__ import annotations
from typing import Any, Optional


class ToolkitError(Exception):
    """General error raised by the work graph and its builder."""

    def __init__(
        self,
        message: str,
        error_type: str = "toolkit",
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.source = "toolkit"
        self.cause = cause

    @staticmethod
    def is_toolkit_error(x: Any) -> bool:
        return isinstance(x, ToolkitError)

    @classmethod
    def with_cause(cls, message: str, error: BaseException) -> "ToolkitError":
        err = cls(message, cause=error)
        err.__cause__ = error
        return err


class AssemblyError(ToolkitError):
    """A synthesized cloud assembly or asset manifest could not be read."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, error_type="assembly", cause=cause)
        self.source = "user"

    @classmethod
    def with_cause(cls, message: str, error: BaseException) -> "AssemblyError":
        err = cls(message, cause=error)
        err.__cause__ = error
        return err
