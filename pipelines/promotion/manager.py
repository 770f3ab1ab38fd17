"""Promotion and rollback of experiments into a model's production slot.

Every mutation of the production directory, the registry and the history
happens while holding the model's advisory lock, so concurrent writers
serialize per model.
"""

import shutil
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pipelines.promotion.comparator import MetricComparator
from pipelines.promotion.policy import (
    PromotionDecision,
    PromotionPolicy,
    PromotionPolicyEvaluator,
    QualityGate,
)
from shared.config import get_settings
from shared.storage import (
    HistoryCorruptedError,
    MetricStore,
    ModelLockTimeout,
    PromotionRecord,
    model_lock,
    sanitize_model_name,
)
from shared.storage.schemas import as_utc, utc_now
from shared.utils import get_logger, get_metrics, governance_context

logger = get_logger(__name__)
app_metrics = get_metrics()


class PromotionErrorKind(str, Enum):
    """Why a promotion or rollback did not happen."""

    EXPERIMENT_NOT_FOUND = "experiment_not_found"
    NO_PRODUCTION = "no_production"
    NO_ROLLBACK_TARGET = "no_rollback_target"
    LOCKED = "locked"
    HISTORY_CORRUPTED = "history_corrupted"


@dataclass
class PromotionOutcome:
    """Result of a promotion attempt."""

    success: bool
    model_name: str
    experiment_id: str
    previous_experiment_id: str | None = None
    backup_path: Path | None = None
    timestamp: datetime = field(default_factory=utc_now)
    error: PromotionErrorKind | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "model_name": self.model_name,
            "experiment_id": self.experiment_id,
            "previous_experiment_id": self.previous_experiment_id,
            "backup_path": str(self.backup_path) if self.backup_path else None,
            "timestamp": self.timestamp.isoformat(),
            "error": self.error.value if self.error else None,
            "message": self.message,
        }


@dataclass
class RollbackOutcome:
    """Result of a rollback attempt."""

    success: bool
    model_name: str
    from_experiment_id: str | None = None
    to_experiment_id: str | None = None
    timestamp: datetime = field(default_factory=utc_now)
    error: PromotionErrorKind | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "model_name": self.model_name,
            "from_experiment_id": self.from_experiment_id,
            "to_experiment_id": self.to_experiment_id,
            "timestamp": self.timestamp.isoformat(),
            "error": self.error.value if self.error else None,
            "message": self.message,
        }


@dataclass
class AutoPromotionResult:
    """Quality gate decision and, when approved, the promotion outcome."""

    decision: PromotionDecision
    outcome: PromotionOutcome | None = None

    @property
    def promoted(self) -> bool:
        return self.outcome is not None and self.outcome.success

    def to_dict(self) -> dict[str, Any]:
        return {
            "promoted": self.promoted,
            "decision": self.decision.to_dict(),
            "outcome": self.outcome.to_dict() if self.outcome else None,
        }


def _replace_directory(source: Path, destination: Path) -> None:
    """Make ``destination`` an exact copy of ``source``."""
    if destination.exists():
        shutil.rmtree(destination)
    shutil.copytree(source, destination)


class PromotionManager:
    """Moves experiments in and out of production and keeps the audit trail."""

    def __init__(
        self,
        store: MetricStore | None = None,
        evaluator: PromotionPolicyEvaluator | None = None,
        quality_gate: QualityGate | None = None,
        lock_timeout: float | None = None,
    ) -> None:
        """Initialize promotion manager.

        Args:
            store: Metric store; defaults to the configured project.
            evaluator: Policy evaluator; built on ``store`` when omitted.
            quality_gate: Gate used by ``auto_promote``.
            lock_timeout: Seconds to wait for the model lock.
        """
        self.store = store or MetricStore()
        self.layout = self.store.layout
        self.evaluator = evaluator or PromotionPolicyEvaluator(
            self.store, MetricComparator(self.store)
        )
        self.quality_gate = quality_gate or QualityGate(self.store)
        self.lock_timeout = (
            lock_timeout if lock_timeout is not None else get_settings().lock_timeout_seconds
        )

    def evaluate_promotion(
        self, model_name: str, candidate_experiment_id: str, policy: PromotionPolicy
    ) -> PromotionDecision:
        """Check a candidate against ``policy`` without promoting it."""
        return self.evaluator.evaluate(model_name, candidate_experiment_id, policy)

    def promote(
        self,
        model_name: str,
        experiment_id: str,
        create_backup: bool | None = None,
    ) -> PromotionOutcome:
        """Copy an experiment into production and record the promotion.

        The previous production directory is backed up first when
        ``create_backup`` is set and a previous production experiment is
        recorded. Production is replaced, never merged.

        Args:
            model_name: Model to promote.
            experiment_id: Experiment to make live.
            create_backup: Back up the current production; defaults to settings.

        Returns:
            PromotionOutcome. Failures are reported with ``success=False``
            and an error kind; nothing on disk is modified in that case.
        """
        name = sanitize_model_name(model_name)
        if create_backup is None:
            create_backup = get_settings().create_backup

        try:
            with governance_context(name, "promote", experiment_id=experiment_id), model_lock(
                self.layout.lock_path(name), name, self.lock_timeout
            ):
                outcome = self._promote_locked(name, experiment_id, create_backup)
        except ModelLockTimeout as e:
            outcome = PromotionOutcome(
                success=False,
                model_name=name,
                experiment_id=experiment_id,
                error=PromotionErrorKind.LOCKED,
                message=str(e),
            )

        app_metrics.record_promotion(name, "success" if outcome.success else outcome.error.value)
        if outcome.success:
            app_metrics.set_production(name, experiment_id)
        return outcome

    def _promote_locked(
        self, name: str, experiment_id: str, create_backup: bool
    ) -> PromotionOutcome:
        previous_id = self.store.get_production_experiment_id(name)

        experiment_path = self.layout.experiment_path(name, experiment_id)
        if not experiment_path.is_dir():
            logger.warning("promotion_experiment_missing", model_name=name, experiment_id=experiment_id)
            return PromotionOutcome(
                success=False,
                model_name=name,
                experiment_id=experiment_id,
                previous_experiment_id=previous_id,
                error=PromotionErrorKind.EXPERIMENT_NOT_FOUND,
                message=f"Experiment '{experiment_id}' not found for model '{name}'",
            )

        # Refuse on an unreadable audit trail before touching production.
        try:
            self.store.load_history(name)
        except HistoryCorruptedError as e:
            logger.error("promotion_history_corrupted", error=str(e))
            return PromotionOutcome(
                success=False,
                model_name=name,
                experiment_id=experiment_id,
                previous_experiment_id=previous_id,
                error=PromotionErrorKind.HISTORY_CORRUPTED,
                message=str(e),
            )

        now = utc_now()
        production_path = self.layout.production_path(name)
        backup_path: Path | None = None

        if create_backup and previous_id and production_path.is_dir():
            backup_path = self.layout.backup_path(name, previous_id, now)
            shutil.copytree(production_path, backup_path, dirs_exist_ok=True)
            logger.info(
                "production_backed_up",
                model_name=name,
                experiment_id=previous_id,
                backup_path=str(backup_path),
            )

        _replace_directory(experiment_path, production_path)
        self.store.write_registry(name, experiment_id, production_path)
        self.store.append_history(
            name,
            PromotionRecord(
                model_name=name,
                experiment_id=experiment_id,
                previous_experiment_id=previous_id,
                action="promote",
                reason=f"Promoted {experiment_id} (previous: {previous_id or 'none'})",
                timestamp=now,
            ),
        )

        logger.info(
            "model_promoted",
            model_name=name,
            experiment_id=experiment_id,
            previous_experiment_id=previous_id,
        )
        return PromotionOutcome(
            success=True,
            model_name=name,
            experiment_id=experiment_id,
            previous_experiment_id=previous_id,
            backup_path=backup_path,
            timestamp=now,
        )

    def rollback(
        self, model_name: str, target_experiment_id: str | None = None
    ) -> RollbackOutcome:
        """Restore an earlier experiment to production.

        Without an explicit target, the most recently promoted experiment that
        is not the current production one is chosen from the full history.
        """
        name = sanitize_model_name(model_name)

        try:
            with governance_context(name, "rollback"), model_lock(
                self.layout.lock_path(name), name, self.lock_timeout
            ):
                outcome = self._rollback_locked(name, target_experiment_id)
        except ModelLockTimeout as e:
            outcome = RollbackOutcome(
                success=False,
                model_name=name,
                to_experiment_id=target_experiment_id,
                error=PromotionErrorKind.LOCKED,
                message=str(e),
            )

        app_metrics.record_rollback(name, "success" if outcome.success else outcome.error.value)
        if outcome.success and outcome.to_experiment_id:
            app_metrics.set_production(name, outcome.to_experiment_id)
        return outcome

    def _rollback_locked(self, name: str, target_experiment_id: str | None) -> RollbackOutcome:
        current_id = self.store.get_production_experiment_id(name)
        if not current_id:
            return RollbackOutcome(
                success=False,
                model_name=name,
                to_experiment_id=target_experiment_id,
                error=PromotionErrorKind.NO_PRODUCTION,
                message=f"Model '{name}' has no production experiment",
            )

        try:
            history = self.store.load_history(name)
        except HistoryCorruptedError as e:
            logger.error("rollback_history_corrupted", error=str(e))
            return RollbackOutcome(
                success=False,
                model_name=name,
                from_experiment_id=current_id,
                to_experiment_id=target_experiment_id,
                error=PromotionErrorKind.HISTORY_CORRUPTED,
                message=str(e),
            )

        if target_experiment_id is None:
            target_experiment_id = next(
                (
                    record.experiment_id
                    for record in reversed(history)
                    if record.action == "promote" and record.experiment_id != current_id
                ),
                None,
            )
            if target_experiment_id is None:
                return RollbackOutcome(
                    success=False,
                    model_name=name,
                    from_experiment_id=current_id,
                    error=PromotionErrorKind.NO_ROLLBACK_TARGET,
                    message=f"No previous promotion to roll back to for model '{name}'",
                )

        target_path = self.layout.experiment_path(name, target_experiment_id)
        if not target_path.is_dir():
            logger.warning(
                "rollback_target_missing", model_name=name, experiment_id=target_experiment_id
            )
            return RollbackOutcome(
                success=False,
                model_name=name,
                from_experiment_id=current_id,
                to_experiment_id=target_experiment_id,
                error=PromotionErrorKind.EXPERIMENT_NOT_FOUND,
                message=f"Experiment '{target_experiment_id}' not found for model '{name}'",
            )

        now = utc_now()
        production_path = self.layout.production_path(name)
        _replace_directory(target_path, production_path)
        self.store.write_registry(name, target_experiment_id, production_path)
        self.store.append_history(
            name,
            PromotionRecord(
                model_name=name,
                experiment_id=target_experiment_id,
                previous_experiment_id=current_id,
                action="rollback",
                reason=f"Rolled back from {current_id} to {target_experiment_id}",
                timestamp=now,
            ),
        )

        logger.info(
            "model_rolled_back",
            model_name=name,
            from_experiment_id=current_id,
            to_experiment_id=target_experiment_id,
        )
        return RollbackOutcome(
            success=True,
            model_name=name,
            from_experiment_id=current_id,
            to_experiment_id=target_experiment_id,
            timestamp=now,
        )

    def get_history(self, model_name: str, limit: int = 10) -> list[PromotionRecord]:
        """Most recent history records first; ties keep later appends first."""
        records = self.store.load_history(model_name)
        ordered = sorted(
            enumerate(records),
            key=lambda item: (as_utc(item[1].timestamp), item[0]),
            reverse=True,
        )
        return [record for _, record in ordered[: max(limit, 0)]]

    def auto_promote(
        self,
        model_name: str,
        experiment_id: str,
        primary_metric: str,
        class_count: int | None = None,
    ) -> AutoPromotionResult:
        """Promote ``experiment_id`` if it passes the quality gate."""
        name = sanitize_model_name(model_name)
        with governance_context(name, "auto_promote", experiment_id=experiment_id):
            decision = self.quality_gate.evaluate(
                model_name, experiment_id, primary_metric, class_count
            )
            if not decision.approved:
                logger.info("auto_promotion_skipped", reason=decision.reason)
                return AutoPromotionResult(decision=decision)

            return AutoPromotionResult(
                decision=decision, outcome=self.promote(model_name, experiment_id)
            )
