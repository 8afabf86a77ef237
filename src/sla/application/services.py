"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

- SLAService: preset resolution, timer lifecycle and read models
- SLAMonitorService: periodic breach and warning detection
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from src.config import AlertType, SLA_STAGES, settings
from src.core import (
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
    utcnow,
)
from src.shared.infrastructure.logging import get_logger
from src.sla.domain import (
    SLAAlert,
    SLAConfig,
    SLAPresetTable,
    SLAStatusProjector,
    SLATimer,
    active_timer,
    resolve,
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLATimerRepository(ABC):
    """Interface for SLA timer data access."""

    @abstractmethod
    async def load_timers(self, job_id: str) -> List[SLATimer]:
        """All timers of a job in creation order."""

    @abstractmethod
    async def get_active(self, job_id: str, stage: str) -> Optional[SLATimer]:
        """The running timer of a stage, if any."""

    @abstractmethod
    async def list_active(self) -> List[SLATimer]:
        """Every running timer across all jobs."""

    @abstractmethod
    async def get_config(self, job_id: str) -> Optional[SLAConfig]:
        """Budgets stored for a job at initialization."""

    @abstractmethod
    async def initialize(self, job_id: str, config: SLAConfig, now: datetime) -> List[SLATimer]:
        """Store the job's budgets and start the dispatch timer. Idempotent."""

    @abstractmethod
    async def complete_stage(self, job_id: str, stage: str, now: datetime) -> Optional[SLATimer]:
        """Close the stage timer and any skipped earlier ones, then start the next stage. None if nothing was open."""

    @abstractmethod
    async def mark_breached(self, timer_id: str, now: datetime) -> None:
        """Flag a timer as breached."""

    @abstractmethod
    async def flag_job_breached(self, job_id: str) -> None:
        """Set the job-level breach flag."""


class ISLAAlertRepository(ABC):
    """Interface for SLA alert data access."""

    @abstractmethod
    async def load_alerts(self, job_id: str) -> List[SLAAlert]:
        """Alerts of a job, most recent first."""

    @abstractmethod
    async def create(self, alert: SLAAlert) -> SLAAlert:
        """Create new alert."""

    @abstractmethod
    async def has_alert(self, timer_id: str, alert_type: str) -> bool:
        """Whether an alert of this type already exists for the timer."""

    @abstractmethod
    async def acknowledge(self, alert_id: str) -> Optional[SLAAlert]:
        """Flip the acknowledged flag. None if the alert does not exist."""


class ISLAPresetProvider(ABC):
    """Interface for SLA preset table access."""

    @abstractmethod
    def get_presets(self) -> SLAPresetTable:
        """Get current preset table."""


# ========== Application Services ==========

class SLAService:
    """
    Service for SLA timers and alerts of individual jobs.

    Reads are soft-fail: a storage error yields an empty list so status
    displays keep rendering.
    """

    def __init__(
        self,
        timer_repository: ISLATimerRepository,
        alert_repository: ISLAAlertRepository,
        preset_provider: ISLAPresetProvider,
        projector: Optional[SLAStatusProjector] = None
    ):
        self._timer_repo = timer_repository
        self._alert_repo = alert_repository
        self._preset_provider = preset_provider
        self._projector = projector or SLAStatusProjector()

    def resolve_config(self, trade: Optional[str], urgency: Optional[str]) -> Tuple[SLAConfig, bool]:
        """
        Budgets for a trade and urgency.

        Returns:
            (config, is_default) where is_default means the fallback was used
        """
        presets = self._preset_provider.get_presets()
        config = resolve(trade, urgency, presets)
        return config, presets.get(trade, urgency) is None

    async def load_timers(self, job_id: str) -> List[SLATimer]:
        try:
            return await self._timer_repo.load_timers(job_id)
        except RepositoryException as e:
            logger.warning(
                "Failed to load SLA timers",
                extra={"job_id": job_id, "error": e.message}
            )
            return []

    async def load_alerts(self, job_id: str) -> List[SLAAlert]:
        try:
            return await self._alert_repo.load_alerts(job_id)
        except RepositoryException as e:
            logger.warning(
                "Failed to load SLA alerts",
                extra={"job_id": job_id, "error": e.message}
            )
            return []

    async def job_snapshot(self, job_id: str, now: Optional[datetime] = None) -> dict:
        """Full read model of a job's SLA state."""
        now = now or utcnow()
        timers = await self.load_timers(job_id)
        alerts = await self.load_alerts(job_id)
        current = active_timer(timers)
        return {
            "job_id": job_id,
            "overall_status": self._projector.overall_status(timers, now),
            "active_stage": current.stage if current else None,
            "timers": [self._projector.project(t, now) for t in timers],
            "alerts": [a.to_dict() for a in alerts],
        }

    async def initialize_timers(
        self,
        job_id: str,
        trade: Optional[str] = None,
        urgency: Optional[str] = None,
        overrides: Optional[Dict[str, Optional[int]]] = None,
        now: Optional[datetime] = None
    ) -> Tuple[SLAConfig, List[SLATimer]]:
        """
        Resolve budgets and start the job's SLA clock.

        Calling this again for a job that already has timers changes nothing.
        """
        config, _ = self.resolve_config(trade, urgency)
        if overrides:
            try:
                config = config.with_overrides(**overrides)
            except ValueError as e:
                raise ValidationException(str(e))

        timers = await self._timer_repo.initialize(job_id, config, now or utcnow())
        logger.info(
            "SLA timers initialized",
            extra={"job_id": job_id, "trade": trade, "urgency": urgency, "sla": config.as_dict()}
        )
        return config, timers

    async def complete_stage(
        self,
        job_id: str,
        stage: str,
        now: Optional[datetime] = None
    ) -> Optional[SLATimer]:
        if stage not in SLA_STAGES:
            raise ValidationException(
                f"Invalid stage '{stage}'. Must be one of: {', '.join(SLA_STAGES)}"
            )

        timer = await self._timer_repo.complete_stage(job_id, stage, now or utcnow())
        if timer is None:
            logger.info(
                "No active SLA timer for stage",
                extra={"job_id": job_id, "stage": stage}
            )
        else:
            logger.info(
                "SLA stage completed",
                extra={"job_id": job_id, "stage": stage, "timer_id": timer.id}
            )
        return timer

    async def acknowledge_alert(self, alert_id: str) -> SLAAlert:
        alert = await self._alert_repo.acknowledge(alert_id)
        if alert is None:
            raise ResourceNotFoundException("SLA alert", alert_id)
        return alert


class SLAMonitorService:
    """
    Breach monitor.

    Run periodically to check all running timers, mark breaches and raise
    warning and breach alerts.
    """

    def __init__(
        self,
        timer_repository: ISLATimerRepository,
        alert_repository: ISLAAlertRepository,
        warning_fraction: Optional[float] = None
    ):
        self._timer_repo = timer_repository
        self._alert_repo = alert_repository
        self._warning_fraction = (
            settings.sla_warning_fraction if warning_fraction is None else warning_fraction
        )

    async def evaluate(self, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        timers = await self._timer_repo.list_active()

        alerts_created = 0
        breaches = 0
        details = []

        for timer in timers:
            elapsed = timer.elapsed_minutes(now)
            remaining = timer.target_minutes - elapsed

            if elapsed >= timer.target_minutes:
                await self._timer_repo.mark_breached(timer.id, now)
                await self._timer_repo.flag_job_breached(timer.job_id)
                await self._alert_repo.create(SLAAlert(
                    id=None,
                    job_id=timer.job_id,
                    timer_id=timer.id,
                    alert_type=AlertType.BREACH,
                    stage=timer.stage,
                    message=(
                        f"SLA breached for {timer.stage} stage. "
                        f"Exceeded {timer.target_minutes} minute target."
                    ),
                    sent_at=now,
                ))
                breaches += 1
                alerts_created += 1
                details.append({
                    "job_id": timer.job_id,
                    "stage": timer.stage,
                    "type": AlertType.BREACH,
                    "elapsed_minutes": round(elapsed, 1),
                })
                logger.warning(
                    "SLA breached",
                    extra={"job_id": timer.job_id, "stage": timer.stage, "timer_id": timer.id}
                )

            elif 0 < remaining <= self._warning_fraction * timer.target_minutes:
                if await self._alert_repo.has_alert(timer.id, AlertType.WARNING):
                    continue
                await self._alert_repo.create(SLAAlert(
                    id=None,
                    job_id=timer.job_id,
                    timer_id=timer.id,
                    alert_type=AlertType.WARNING,
                    stage=timer.stage,
                    message=(
                        f"SLA warning for {timer.stage} stage. "
                        f"Only {round(remaining)} minutes remaining."
                    ),
                    sent_at=now,
                ))
                alerts_created += 1
                details.append({
                    "job_id": timer.job_id,
                    "stage": timer.stage,
                    "type": AlertType.WARNING,
                    "remaining_minutes": round(remaining, 1),
                })

        logger.info(
            "SLA evaluation complete",
            extra={"checked": len(timers), "alerts": alerts_created, "breaches": breaches}
        )
        return {
            "success": True,
            "checked": len(timers),
            "alerts": alerts_created,
            "breaches": breaches,
            "details": details,
        }
