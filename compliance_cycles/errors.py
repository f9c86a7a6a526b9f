"""
Exceptions raised by the compliance engine.
"""

from __future__ import annotations

from typing import Optional


class ComplianceError(Exception):
    """Base class for compliance engine errors."""


class InvalidIntervalError(ComplianceError, ValueError):
    """An obligation interval has an unusable start or end date."""

    def __init__(self, message: str, interval: Optional[object] = None) -> None:
        super().__init__(message)
        self.interval = interval


class StatsUnavailableError(ComplianceError):
    """Institution stats could not be computed; the caller should retry."""

    def __init__(self, institution_id: str, reason: str = "") -> None:
        message = f"Stats unavailable for institution {institution_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.institution_id = institution_id
