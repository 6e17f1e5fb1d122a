"""Verification-and-recovery core.

Subpackages:
- core.execution     - mutation log, shell guard, action executor
- core.diagnostics   - tool adapters and the diagnostics collector
- core.verification  - snapshots, per-file verification, rollback, checkpoints, evidence
"""
