"""
Error types raised by the aggregator.
"""
from typing import Any, Dict, List, Optional


class AggregatorError(Exception):
    """Base class for aggregator failures."""


class AggregationValidationError(AggregatorError, ValueError):
    """Raised when a request is rejected before any computation starts."""

    def __init__(self, message: str, issues: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.issues = issues or []


class FetchError(AggregatorError):
    """Raised when an upstream fact or group fetch fails."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class UnknownReportError(AggregatorError, KeyError):
    """Raised when no strategy is registered for a report type."""

    def __init__(self, report_type: str):
        super().__init__(report_type)
        self.report_type = report_type

    def __str__(self):
        return f"Unknown report type: {self.report_type}"
