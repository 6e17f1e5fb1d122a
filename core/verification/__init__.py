"""Verification: snapshots, per-file checks, rollback, checkpoints, evidence."""

from core.verification.checkpoint import Checkpoint, CheckpointManager, CheckpointNotFound, RestoreResult
from core.verification.evidence import (
    ErrorCounts,
    EvidenceReporter,
    Verdict,
    VerificationEvidence,
    validate_fix_claim,
)
from core.verification.per_file import PerFileVerifier, PerFileVerifyResult
from core.verification.rollback import (
    NotTrackingError,
    RollbackController,
    RollbackDecision,
    RollbackResult,
    RollbackState,
)
from core.verification.snapshot import ErrorComparison, ErrorSnapshot, ErrorTracker, compare_snapshots
from core.verification.unified import PhaseResult, UnifiedResult, UnifiedVerifier

__all__ = [
    "Checkpoint",
    "CheckpointManager",
    "CheckpointNotFound",
    "ErrorComparison",
    "ErrorCounts",
    "ErrorSnapshot",
    "ErrorTracker",
    "EvidenceReporter",
    "NotTrackingError",
    "PerFileVerifier",
    "PerFileVerifyResult",
    "PhaseResult",
    "RestoreResult",
    "RollbackController",
    "RollbackDecision",
    "RollbackResult",
    "RollbackState",
    "UnifiedResult",
    "UnifiedVerifier",
    "Verdict",
    "VerificationEvidence",
    "compare_snapshots",
    "validate_fix_claim",
]
