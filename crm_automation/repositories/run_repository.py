"""Run repository - runs, their step records and delay suspensions."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, TYPE_CHECKING

from sqlalchemy import delete, func, update
from sqlmodel import select

from ..db.models import RunModel, StepRecordModel, SuspensionModel, WorkflowModel
from ..engine.types import RunStatus

if TYPE_CHECKING:
    from ..db.session import SessionFactory
    from ..engine.types import Run, StepRecord, Suspension

TERMINAL = [s.value for s in RunStatus if s.is_terminal]


@dataclass
class _RunLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class RunRepository:
    """
    Durable run store.

    Writes for the same run are serialized with a per-run asyncio lock that
    lives only while a write holds or waits for it. Step records are
    append-only and a run is finalized at most once.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory
        self._locks: dict[str, _RunLock] = {}

    @asynccontextmanager
    async def lock(self, run_id: str) -> AsyncIterator[None]:
        entry = self._locks.setdefault(run_id, _RunLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[run_id]

    async def create_run(
        self,
        workflow_id: str,
        graph_version: int,
        trigger_payload: dict[str, Any],
        now: datetime,
        tenant_id: str | None = None,
    ) -> Run:
        """Create a pending run and bump the workflow's execution counter."""
        db_run = RunModel(
            id=f"run_{uuid.uuid4().hex}",
            workflow_id=workflow_id,
            tenant_id=tenant_id,
            graph_version=graph_version,
            status=RunStatus.PENDING.value,
            trigger_payload=trigger_payload,
            started_at=now,
        )

        async with self._session_factory() as session:
            session.add(db_run)
            await session.execute(
                update(WorkflowModel)
                .where(WorkflowModel.id == workflow_id)
                .values(execution_count=WorkflowModel.execution_count + 1, last_executed=now)
            )
            await session.commit()
            await session.refresh(db_run)

        return self._to_run(db_run, [])

    async def mark_running(self, run_id: str) -> bool:
        async with self.lock(run_id):
            async with self._session_factory() as session:
                result = await session.execute(
                    update(RunModel)
                    .where(RunModel.id == run_id)
                    .where(RunModel.status == RunStatus.PENDING.value)
                    .values(status=RunStatus.RUNNING.value)
                )
                await session.commit()
        return result.rowcount == 1

    async def append_step(self, run_id: str, step: StepRecord) -> None:
        """Append a step record after the run's existing steps."""
        async with self.lock(run_id):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(StepRecordModel).where(StepRecordModel.run_id == run_id)
                )
                seq = result.scalar_one()
                session.add(
                    StepRecordModel(
                        run_id=run_id,
                        seq=seq,
                        node_id=step.node_id,
                        node_type=step.node_type,
                        status=step.status.value,
                        input=step.input,
                        output=step.output,
                        error=step.error,
                        error_kind=step.error_kind,
                        started_at=step.started_at,
                        completed_at=step.completed_at,
                    )
                )
                await session.commit()

    async def finalize(self, run_id: str, status: RunStatus, now: datetime) -> bool:
        """
        Move a run to a terminal status.

        Returns:
            True if this call finalized the run, False if it was already terminal
        """
        if not status.is_terminal:
            raise ValueError(f"Cannot finalize run with non-terminal status {status.value}")

        async with self.lock(run_id):
            async with self._session_factory() as session:
                result = await session.execute(
                    update(RunModel)
                    .where(RunModel.id == run_id)
                    .where(RunModel.status.not_in(TERMINAL))
                    .values(status=status.value, completed_at=now)
                )
                await session.execute(delete(SuspensionModel).where(SuspensionModel.run_id == run_id))
                await session.commit()

        return result.rowcount == 1

    async def get_run(self, run_id: str) -> Run | None:
        """Get a run with its step records in walk order."""
        async with self._session_factory() as session:
            db_run = await session.get(RunModel, run_id)
            if not db_run:
                return None
            steps = await self._steps(session, run_id)
            suspension = await session.get(SuspensionModel, run_id)
        return self._to_run(db_run, steps, suspension.resume_at if suspension else None)

    async def list_runs(
        self,
        workflow_id: str | None = None,
        status: RunStatus | None = None,
        tenant_id: str | None = None,
        limit: int = 100,
    ) -> list[Run]:
        """List runs newest first, optionally filtered."""
        statement = select(RunModel).order_by(RunModel.started_at.desc()).limit(limit)
        if workflow_id:
            statement = statement.where(RunModel.workflow_id == workflow_id)
        if status is not None:
            statement = statement.where(RunModel.status == status.value)
        if tenant_id:
            statement = statement.where(RunModel.tenant_id == tenant_id)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            runs = result.scalars().all()
            return [self._to_run(r, await self._steps(session, r.id)) for r in runs]

    # --- Cancellation ---

    async def request_cancel(self, run_id: str) -> bool:
        """Flag a live run for cancellation before its next step."""
        async with self.lock(run_id):
            async with self._session_factory() as session:
                result = await session.execute(
                    update(RunModel)
                    .where(RunModel.id == run_id)
                    .where(RunModel.status.not_in(TERMINAL))
                    .values(cancel_requested=True)
                )
                await session.commit()
        return result.rowcount == 1

    async def is_cancel_requested(self, run_id: str) -> bool:
        async with self._session_factory() as session:
            db_run = await session.get(RunModel, run_id)
        return bool(db_run and db_run.cancel_requested)

    # --- Suspensions ---

    async def save_suspension(self, suspension: Suspension) -> None:
        async with self.lock(suspension.run_id):
            async with self._session_factory() as session:
                await session.merge(SuspensionModel(**asdict(suspension)))
                await session.commit()

    async def get_suspension(self, run_id: str) -> Suspension | None:
        async with self._session_factory() as session:
            row = await session.get(SuspensionModel, run_id)
        return self._to_suspension(row) if row else None

    async def due_suspensions(self, now: datetime, limit: int = 100) -> list[Suspension]:
        """Suspensions whose resume time has passed, oldest first."""
        statement = (
            select(SuspensionModel)
            .where(SuspensionModel.resume_at <= now)
            .order_by(SuspensionModel.resume_at)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            rows = result.scalars().all()
        return [self._to_suspension(r) for r in rows]

    async def claim_suspension(self, run_id: str) -> Suspension | None:
        """
        Atomically take a suspension out of the store.

        Only one caller gets it; a resume and a cancel racing for the same
        run cannot both proceed.
        """
        async with self.lock(run_id):
            async with self._session_factory() as session:
                row = await session.get(SuspensionModel, run_id)
                if row is None:
                    return None
                suspension = self._to_suspension(row)
                result = await session.execute(
                    delete(SuspensionModel).where(SuspensionModel.run_id == run_id)
                )
                await session.commit()
        return suspension if result.rowcount == 1 else None

    # --- Helpers ---

    async def _steps(self, session: Any, run_id: str) -> list[StepRecord]:
        from ..engine.types import StepRecord, StepStatus

        result = await session.execute(
            select(StepRecordModel).where(StepRecordModel.run_id == run_id).order_by(StepRecordModel.seq)
        )
        return [
            StepRecord(
                node_id=s.node_id,
                node_type=s.node_type,
                status=StepStatus(s.status),
                input=s.input or {},
                output=s.output,
                error=s.error,
                error_kind=s.error_kind,
                started_at=s.started_at,
                completed_at=s.completed_at,
            )
            for s in result.scalars().all()
        ]

    def _to_run(self, db_run: RunModel, steps: list[StepRecord], resume_at: datetime | None = None) -> Run:
        from ..engine.types import Run

        return Run(
            id=db_run.id,
            workflow_id=db_run.workflow_id,
            tenant_id=db_run.tenant_id,
            graph_version=db_run.graph_version,
            status=RunStatus(db_run.status),
            trigger_payload=db_run.trigger_payload,
            started_at=db_run.started_at,
            completed_at=db_run.completed_at,
            cancel_requested=db_run.cancel_requested,
            steps=steps,
            resume_at=resume_at,
        )

    def _to_suspension(self, row: SuspensionModel) -> Suspension:
        from ..engine.types import Suspension

        return Suspension(
            run_id=row.run_id,
            workflow_id=row.workflow_id,
            graph_version=row.graph_version,
            node_id=row.node_id,
            pending=list(row.pending),
            visited=list(row.visited),
            context=dict(row.context),
            suspended_at=row.suspended_at,
            resume_at=row.resume_at,
        )
