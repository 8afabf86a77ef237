"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

Every mutation is recorded on the session so the change feed can notify
WebSocket subscribers once the transaction commits.
"""

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import SLAStage, SLA_STAGES
from src.core import RepositoryException
from src.sla.application.services import ISLAAlertRepository, ISLATimerRepository
from src.sla.domain import SLAAlert, SLAConfig, SLATimer, earlier_stages, next_stage
from src.sla.infrastructure.external import track_change


def _to_timer(model) -> SLATimer:
    return SLATimer(
        id=model.id,
        job_id=model.job_id,
        stage=model.stage,
        target_minutes=model.target_minutes,
        started_at=model.started_at,
        completed_at=model.completed_at,
        breached=model.breached,
        breach_time=model.breach_time,
        created_at=model.created_at,
    )


def _to_alert(model) -> SLAAlert:
    return SLAAlert(
        id=model.id,
        job_id=model.job_id,
        timer_id=model.timer_id,
        alert_type=model.alert_type,
        stage=model.stage,
        message=model.message,
        sent_at=model.sent_at,
        acknowledged=model.acknowledged,
    )


class SQLAlchemySLATimerRepository(ISLATimerRepository):
    """
    SQLAlchemy implementation of the timer repository.

    Stages run one after another: only the dispatch timer starts at
    initialization, the rest start as the previous stage completes.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def load_timers(self, job_id: str) -> List[SLATimer]:
        from src.sla.infrastructure.models import SLATimerModel

        stmt = (
            select(SLATimerModel)
            .where(SLATimerModel.job_id == job_id)
            .order_by(SLATimerModel.created_at, SLATimerModel.started_at)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load SLA timers: {e}")
        timers = [_to_timer(m) for m in result.scalars().all()]
        # Ties on created_at are broken by stage order
        return sorted(timers, key=lambda t: (t.created_at, SLA_STAGES.index(t.stage)))

    async def _active_model(self, job_id: str, stage: str):
        from src.sla.infrastructure.models import SLATimerModel

        stmt = select(SLATimerModel).where(
            SLATimerModel.job_id == job_id,
            SLATimerModel.stage == stage,
            SLATimerModel.completed_at.is_(None),
            SLATimerModel.breached.is_(False),
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def _open_model(self, job_id: str, stage: str):
        """Uncompleted timer of the stage, breached or not."""
        from src.sla.infrastructure.models import SLATimerModel

        stmt = select(SLATimerModel).where(
            SLATimerModel.job_id == job_id,
            SLATimerModel.stage == stage,
            SLATimerModel.completed_at.is_(None),
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_active(self, job_id: str, stage: str) -> Optional[SLATimer]:
        model = await self._active_model(job_id, stage)
        return _to_timer(model) if model else None

    async def list_active(self) -> List[SLATimer]:
        from src.sla.infrastructure.models import SLATimerModel

        stmt = select(SLATimerModel).where(
            SLATimerModel.completed_at.is_(None),
            SLATimerModel.breached.is_(False),
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to list active SLA timers: {e}")
        return [_to_timer(m) for m in result.scalars().all()]

    async def get_config(self, job_id: str) -> Optional[SLAConfig]:
        from src.sla.infrastructure.models import SLAJobConfigModel

        model = await self._session.get(SLAJobConfigModel, job_id)
        if model is None:
            return None
        return SLAConfig(
            dispatch=model.dispatch_minutes,
            assignment=model.assignment_minutes,
            arrival=model.arrival_minutes,
            completion=model.completion_minutes,
        )

    async def _start_timer(self, job_id: str, stage: str, target_minutes: int, now: datetime):
        from src.sla.infrastructure.models import SLATimerModel

        existing = await self._open_model(job_id, stage)
        if existing is not None:
            return existing

        model = SLATimerModel(
            id=str(uuid4()),
            job_id=job_id,
            stage=stage,
            target_minutes=target_minutes,
            started_at=now,
            created_at=now,
            breached=False,
        )
        self._session.add(model)
        await self._session.flush()
        track_change(self._session, job_id, "sla_timers")
        return model

    async def initialize(self, job_id: str, config: SLAConfig, now: datetime) -> List[SLATimer]:
        from src.sla.infrastructure.models import SLAJobConfigModel

        plan = await self._session.get(SLAJobConfigModel, job_id)
        if plan is None:
            self._session.add(SLAJobConfigModel(
                job_id=job_id,
                dispatch_minutes=config.dispatch,
                assignment_minutes=config.assignment,
                arrival_minutes=config.arrival,
                completion_minutes=config.completion,
                created_at=now,
            ))
            await self._session.flush()
            await self._start_timer(job_id, SLAStage.DISPATCH, config.dispatch, now)

        return await self.load_timers(job_id)

    async def complete_stage(self, job_id: str, stage: str, now: datetime) -> Optional[SLATimer]:
        try:
            # Close stages the job skipped over
            closed = None
            for earlier in earlier_stages(stage):
                stale = await self._open_model(job_id, earlier)
                if stale is not None:
                    stale.completed_at = now
                    closed = stale

            model = await self._open_model(job_id, stage)
            if model is not None:
                model.completed_at = now
                closed = model
            if closed is None:
                return None

            await self._session.flush()
            track_change(self._session, job_id, "sla_timers")

            following = next_stage(stage)
            if following is not None:
                config = await self.get_config(job_id)
                if config is not None:
                    await self._start_timer(job_id, following, config.for_stage(following), now)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to complete SLA stage: {e}")

        return _to_timer(closed)

    async def mark_breached(self, timer_id: str, now: datetime) -> None:
        from src.sla.infrastructure.models import SLATimerModel

        model = await self._session.get(SLATimerModel, timer_id)
        if model is None:
            raise RepositoryException(f"SLA timer {timer_id} not found")

        model.breached = True
        model.breach_time = now
        await self._session.flush()
        track_change(self._session, model.job_id, "sla_timers")

    async def flag_job_breached(self, job_id: str) -> None:
        from src.dispatch.infrastructure.models import JobModel

        await self._session.execute(
            update(JobModel).where(JobModel.id == job_id).values(sla_breached=True)
        )


class SQLAlchemySLAAlertRepository(ISLAAlertRepository):
    """SQLAlchemy implementation of the alert repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def load_alerts(self, job_id: str) -> List[SLAAlert]:
        from src.sla.infrastructure.models import SLAAlertModel

        stmt = (
            select(SLAAlertModel)
            .where(SLAAlertModel.job_id == job_id)
            .order_by(SLAAlertModel.sent_at.desc())
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load SLA alerts: {e}")
        return [_to_alert(m) for m in result.scalars().all()]

    async def create(self, alert: SLAAlert) -> SLAAlert:
        from src.sla.infrastructure.models import SLAAlertModel

        model = SLAAlertModel(
            id=alert.id or str(uuid4()),
            job_id=alert.job_id,
            timer_id=alert.timer_id,
            alert_type=alert.alert_type,
            stage=alert.stage,
            message=alert.message,
            sent_at=alert.sent_at,
            acknowledged=alert.acknowledged,
        )
        self._session.add(model)
        await self._session.flush()
        track_change(self._session, alert.job_id, "sla_alerts")

        alert.id = model.id
        return alert

    async def has_alert(self, timer_id: str, alert_type: str) -> bool:
        from src.sla.infrastructure.models import SLAAlertModel

        stmt = select(SLAAlertModel.id).where(
            SLAAlertModel.timer_id == timer_id,
            SLAAlertModel.alert_type == alert_type,
        )
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def acknowledge(self, alert_id: str) -> Optional[SLAAlert]:
        from src.sla.infrastructure.models import SLAAlertModel

        model = await self._session.get(SLAAlertModel, alert_id)
        if model is None:
            return None

        model.acknowledged = True
        await self._session.flush()
        track_change(self._session, model.job_id, "sla_alerts")
        return _to_alert(model)
