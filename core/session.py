"""ProjectSession - one verification engine per project.

Wires the collector, trackers, verifiers, rollback controller and action
executor around a single execution host. Sessions are independent; two
projects never share queue or batch state.

Usage:
    session = ProjectSession.from_path("/path/to/project")
    outcome = await session.apply_batch([Action.modify("src/a.ts", new_text)])
    if outcome.rolled_back:
        print(outcome.decision.reason)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from core.diagnostics.collector import DiagnosticsCollector
from core.events import VerificationListener, as_listener
from core.execution.action_executor import ActionExecutor
from core.execution.models import Action, ActionResult
from core.verification.checkpoint import CheckpointManager
from core.verification.evidence import ErrorCounts, EvidenceReporter, VerificationEvidence
from core.verification.per_file import PerFileVerifier
from core.verification.rollback import RollbackController, RollbackDecision, RollbackResult
from core.verification.snapshot import ErrorTracker
from core.verification.unified import UnifiedVerifier

if TYPE_CHECKING:
    from config.schema import VerifySettings
    from sandbox.base import ExecutionHost

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    results: list[ActionResult] = field(default_factory=list)
    decision: RollbackDecision | None = None
    rollback: RollbackResult | None = None

    @property
    def rolled_back(self) -> bool:
        return self.rollback is not None

    @property
    def success(self) -> bool:
        return not self.rolled_back and all(r.success for r in self.results)


class ProjectSession:
    def __init__(
        self,
        host: ExecutionHost,
        settings: VerifySettings | None = None,
        listener: VerificationListener | None = None,
    ):
        if settings is None:
            from config.schema import VerifySettings

            settings = VerifySettings()
        self.host = host
        self.settings = settings
        self.listener = as_listener(listener)

        self.collector = DiagnosticsCollector(host, settings, listener=self.listener)
        self.tracker = ErrorTracker(
            self.collector,
            families=settings.snapshot.families,
            increase_threshold=settings.snapshot.increase_threshold,
            listener=self.listener,
        )
        self.per_file = PerFileVerifier(self.collector, settings.per_file, listener=self.listener)
        self.rollback = RollbackController(
            host.fs, self.tracker, self.per_file, settings.rollback, listener=self.listener
        )
        self.executor = ActionExecutor(
            host,
            settings.executor,
            listener=self.listener,
            verifier=self.per_file,
            change_tracker=self.rollback,
        )
        self.checkpoints = CheckpointManager(host.fs, settings.checkpoints, listener=self.listener)
        self.evidence = EvidenceReporter(settings.evidence, listener=self.listener)
        self.unified = UnifiedVerifier(self.collector, settings.unified, listener=self.listener)

    @classmethod
    def from_path(
        cls,
        root: str | Path,
        overrides: dict[str, Any] | None = None,
        listener: VerificationListener | None = None,
    ) -> ProjectSession:
        """Local project session with layered config from ``root``."""
        from config.loader import ConfigLoader
        from sandbox.local import create_local_host

        settings = ConfigLoader(root).load(overrides)
        return cls(create_local_host(root), settings, listener=listener)

    async def apply_batch(self, actions: list[Action]) -> BatchOutcome:
        """Baseline, mutate, re-measure, then roll back or commit.

        Evidence counts are captured from the same collector runs that
        produce the baseline and the post-change snapshot.
        """
        outcome = BatchOutcome()
        self.evidence.reset()
        await self.rollback.start_tracking()
        self.evidence.capture_pre_change_state(ErrorCounts.from_results(self.tracker.baseline_results))

        outcome.results = await self.executor.execute(actions)

        outcome.decision = await self.rollback.check_error_increase()
        after = self.tracker.last_results
        self.evidence.capture_post_change_state(ErrorCounts.from_results(after))
        self.evidence.record_evidence(
            VerificationEvidence.from_results(after, max_samples=self.settings.evidence.max_errors_in_summary)
        )

        if outcome.decision.should_rollback:
            logger.info("Rolling back batch: %s", outcome.decision.reason)
            outcome.rollback = self.rollback.rollback_all()
        else:
            self.rollback.commit()
        return outcome

    async def verify_project(self):
        return await self.unified.verify()

    def close(self) -> None:
        self.executor.cancel_pending()
        self.host.close()
