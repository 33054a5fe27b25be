"""Exceptions raised for malformed or inconsistent optimizer input."""

from __future__ import annotations

from pathlib import Path


class ConceptWeightsError(Exception):
    """Base class for every error raised by this package."""


class MalformedInputError(ConceptWeightsError):
    """A line of an input stream could not be parsed."""

    def __init__(
        self, path: str | Path | None, line_number: int, text: str, reason: str = ""
    ):
        self.path = str(path) if path is not None else "<stream>"
        self.line_number = line_number
        self.text = text.rstrip("\n")
        self.reason = reason
        message = f"{self.path}:{line_number}: malformed line {self.text!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class DanglingReferenceError(ConceptWeightsError):
    """An input record names a document, query, sign or concept never defined."""

    def __init__(self, kind: str, identifier: int, context: str = ""):
        self.kind = kind
        self.identifier = identifier
        message = f"unknown {kind} {identifier}"
        if context:
            message += f" referenced by {context}"
        super().__init__(message)


class OptimizationFailed(ConceptWeightsError):
    """Raised by ``OptimizationResult.raise_for_status`` when no optimum was reached."""

    def __init__(self, status, iterations: int = 0):
        self.status = status
        self.iterations = iterations
        super().__init__(
            f"optimization stopped with status {status.name} after {iterations} pivots"
        )
