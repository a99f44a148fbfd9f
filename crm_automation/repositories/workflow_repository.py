"""Workflow repository - workflows, their graph versions and timer state."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timedelta
from typing import Any, TYPE_CHECKING

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from ..core.exceptions import ConflictError
from ..db.models import TimerStateModel, WorkflowModel, WorkflowVersionModel

if TYPE_CHECKING:
    from ..db.session import SessionFactory
    from ..engine.types import StoredWorkflow, WorkflowStatus


class WorkflowRepository:
    """Repository for workflow persistence.

    A workflow row carries metadata and its current version number; every
    graph save appends an immutable WorkflowVersionModel row so runs can keep
    reading the version they started on.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        tenant_id: str,
        name: str,
        workflow_data: dict[str, Any],
        now: datetime,
        description: str | None = None,
    ) -> StoredWorkflow:
        """Create a new workflow in draft status at version 1."""
        workflow_id = self._generate_id()

        db_workflow = WorkflowModel(
            id=workflow_id,
            tenant_id=tenant_id,
            name=name,
            description=description,
            status="draft",
            version=1,
            created_at=now,
            updated_at=now,
        )
        db_version = WorkflowVersionModel(
            workflow_id=workflow_id,
            version=1,
            workflow_data=workflow_data,
            created_at=now,
        )

        async with self._session_factory() as session:
            session.add(db_workflow)
            session.add(db_version)
            await session.commit()

        return self._to_stored_workflow(db_workflow, workflow_data)

    async def get(self, workflow_id: str) -> StoredWorkflow | None:
        """Get a workflow with its current graph."""
        async with self._session_factory() as session:
            db_workflow = await session.get(WorkflowModel, workflow_id)
            if not db_workflow:
                return None
            data = await self._version_data(session, workflow_id, db_workflow.version)
        return self._to_stored_workflow(db_workflow, data or {})

    async def get_version(self, workflow_id: str, version: int) -> dict[str, Any] | None:
        """Graph of a specific saved version."""
        async with self._session_factory() as session:
            return await self._version_data(session, workflow_id, version)

    async def list(
        self,
        tenant_id: str | None = None,
        status: WorkflowStatus | None = None,
    ) -> list[StoredWorkflow]:
        """List workflows, most recently updated first."""
        statement = select(WorkflowModel).order_by(WorkflowModel.updated_at.desc())
        if tenant_id is not None:
            statement = statement.where(WorkflowModel.tenant_id == tenant_id)
        if status is not None:
            statement = statement.where(WorkflowModel.status == status.value)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            workflows = result.scalars().all()

            stored = []
            for w in workflows:
                data = await self._version_data(session, w.id, w.version)
                stored.append(self._to_stored_workflow(w, data or {}))
        return stored

    async def update_metadata(
        self,
        workflow_id: str,
        now: datetime,
        name: str | None = None,
        description: str | None = None,
    ) -> StoredWorkflow | None:
        async with self._session_factory() as session:
            db_workflow = await session.get(WorkflowModel, workflow_id)
            if not db_workflow:
                return None

            if name:
                db_workflow.name = name
            if description is not None:
                db_workflow.description = description
            db_workflow.updated_at = _advance(db_workflow.updated_at, now)

            await session.commit()
            await session.refresh(db_workflow)
            data = await self._version_data(session, workflow_id, db_workflow.version)

        return self._to_stored_workflow(db_workflow, data or {})

    async def save_graph(
        self,
        workflow_id: str,
        workflow_data: dict[str, Any],
        expected_updated_at: datetime,
        now: datetime,
    ) -> StoredWorkflow | None:
        """
        Replace the workflow graph with a new version.

        The write only applies if the workflow's ``updated_at`` still equals
        ``expected_updated_at``; the version row and the workflow update
        commit together.

        Raises:
            ConflictError: If the workflow changed since the caller read it
        """
        async with self._session_factory() as session:
            db_workflow = await session.get(WorkflowModel, workflow_id)
            if not db_workflow:
                return None

            new_version = db_workflow.version + 1
            new_updated_at = _advance(expected_updated_at, now)

            result = await session.execute(
                update(WorkflowModel)
                .where(WorkflowModel.id == workflow_id)
                .where(WorkflowModel.updated_at == expected_updated_at)
                .where(WorkflowModel.version == db_workflow.version)
                .values(version=new_version, updated_at=new_updated_at)
            )
            if result.rowcount != 1:
                await session.rollback()
                raise ConflictError(workflow_id)

            session.add(
                WorkflowVersionModel(
                    workflow_id=workflow_id,
                    version=new_version,
                    workflow_data=workflow_data,
                    created_at=now,
                )
            )
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(workflow_id) from e

            await session.refresh(db_workflow)

        return self._to_stored_workflow(db_workflow, workflow_data)

    async def set_status(
        self, workflow_id: str, status: WorkflowStatus, now: datetime
    ) -> StoredWorkflow | None:
        """Set workflow status (draft, active, paused)."""
        async with self._session_factory() as session:
            db_workflow = await session.get(WorkflowModel, workflow_id)
            if not db_workflow:
                return None

            db_workflow.status = status.value
            db_workflow.updated_at = _advance(db_workflow.updated_at, now)

            await session.commit()
            await session.refresh(db_workflow)
            data = await self._version_data(session, workflow_id, db_workflow.version)

        return self._to_stored_workflow(db_workflow, data or {})

    async def delete(self, workflow_id: str) -> bool:
        """Delete a workflow and its graph versions. Run history is kept."""
        async with self._session_factory() as session:
            db_workflow = await session.get(WorkflowModel, workflow_id)
            if not db_workflow:
                return False

            await session.delete(db_workflow)
            await session.execute(
                delete(WorkflowVersionModel).where(WorkflowVersionModel.workflow_id == workflow_id)
            )
            await session.execute(
                delete(TimerStateModel).where(TimerStateModel.workflow_id == workflow_id)
            )
            await session.commit()
        return True

    async def claim_timer_instant(self, workflow_id: str, instant: datetime) -> bool:
        """
        Record that a time-based trigger fired for ``instant``.

        Compare-and-set on the last fired instant: returns False when this or
        a later instant was already claimed, so each instant fires once even
        with several schedulers polling.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(TimerStateModel)
                .where(TimerStateModel.workflow_id == workflow_id)
                .where(TimerStateModel.last_fired_at < instant)
                .values(last_fired_at=instant)
            )
            if result.rowcount == 1:
                await session.commit()
                return True

            existing = await session.get(TimerStateModel, workflow_id)
            if existing is not None:
                return False

            session.add(TimerStateModel(workflow_id=workflow_id, last_fired_at=instant))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
        return True

    async def _version_data(self, session: Any, workflow_id: str, version: int) -> dict[str, Any] | None:
        statement = select(WorkflowVersionModel).where(
            WorkflowVersionModel.workflow_id == workflow_id,
            WorkflowVersionModel.version == version,
        )
        result = await session.execute(statement)
        row = result.scalars().first()
        return row.workflow_data if row else None

    def _generate_id(self) -> str:
        """Generate a unique workflow ID."""
        return f"wf_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"

    def _to_stored_workflow(self, db_workflow: WorkflowModel, workflow_data: dict[str, Any]) -> StoredWorkflow:
        """Convert database model to StoredWorkflow."""
        from ..engine.types import StoredWorkflow, WorkflowStatus

        return StoredWorkflow(
            id=db_workflow.id,
            tenant_id=db_workflow.tenant_id,
            name=db_workflow.name,
            description=db_workflow.description,
            status=WorkflowStatus(db_workflow.status),
            version=db_workflow.version,
            workflow_data=workflow_data,
            created_at=db_workflow.created_at,
            updated_at=db_workflow.updated_at,
            execution_count=db_workflow.execution_count,
            last_executed=db_workflow.last_executed,
        )


def _advance(previous: datetime, now: datetime) -> datetime:
    """A new ``updated_at`` strictly after the previous one."""
    if now > previous:
        return now
    return previous + timedelta(microseconds=1)
