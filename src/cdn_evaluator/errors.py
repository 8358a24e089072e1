"""Exceptions raised by the CDN evaluator."""

from typing import Optional


class EvaluatorError(Exception):
    """Base exception for the evaluator."""
    pass


class ParseError(EvaluatorError):
    """Malformed capture document, markup, or unclassifiable literal URL."""
    pass


class ValidationFailure(EvaluatorError):
    """Input rejected before any network activity."""
    pass


class NetworkFailure(EvaluatorError):
    """Relay unreachable, non-2xx response, or timeout."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.url = url
        super().__init__(message)
