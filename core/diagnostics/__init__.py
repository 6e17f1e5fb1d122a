"""Diagnostics collection: one adapter per tool family, parsed into DiagnosticError.

Only the models and adapter bases are re-exported here; concrete adapters
import the config layer and are pulled in from their own modules.
"""

from core.diagnostics.base import CommandAdapter, DiagnosticAdapter, dedupe_errors
from core.diagnostics.models import (
    CollectionResult,
    DiagnosticError,
    DiagnosticFamily,
    DiagnosticScope,
    Severity,
    TestCounts,
)

__all__ = [
    "CollectionResult",
    "CommandAdapter",
    "DiagnosticAdapter",
    "DiagnosticError",
    "DiagnosticFamily",
    "DiagnosticScope",
    "Severity",
    "TestCounts",
    "dedupe_errors",
]
