"""
Compliance Cycles

Monthly compliance cycle engine for internship tracking: expected report and
visit counts, a tag-indexed result cache and institution compliance scoring.
"""

__version__ = "0.1.0"

from .aggregator import ComplianceAggregator
from .cache import TaggedCache
from .cli import main
from .cycle import CycleCalculator
from .errors import InvalidIntervalError, StatsUnavailableError
from .models import ComplianceScore, CycleCount, ObligationInterval

__all__ = [
    "ComplianceAggregator",
    "ComplianceScore",
    "CycleCalculator",
    "CycleCount",
    "InvalidIntervalError",
    "ObligationInterval",
    "StatsUnavailableError",
    "TaggedCache",
    "main",
]
