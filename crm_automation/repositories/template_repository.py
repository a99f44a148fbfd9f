"""Template repository for database persistence."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, TYPE_CHECKING

from sqlalchemy import or_
from sqlmodel import select

from ..db.models import TemplateModel

if TYPE_CHECKING:
    from ..db.session import SessionFactory
    from ..engine.types import StoredTemplate


class TemplateRepository:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        name: str,
        category: str,
        template_data: dict[str, Any],
        now: datetime,
        description: str | None = None,
        is_public: bool = False,
        created_by: str | None = None,
    ) -> StoredTemplate:
        db_template = TemplateModel(
            id=f"tpl_{uuid.uuid4().hex[:12]}",
            name=name,
            description=description,
            category=category,
            template_data=template_data,
            is_public=is_public,
            created_by=created_by,
            created_at=now,
        )
        async with self._session_factory() as session:
            session.add(db_template)
            await session.commit()
            await session.refresh(db_template)
        return self._to_stored_template(db_template)

    async def get(self, template_id: str) -> StoredTemplate | None:
        async with self._session_factory() as session:
            db_template = await session.get(TemplateModel, template_id)
        return self._to_stored_template(db_template) if db_template else None

    async def list(
        self,
        category: str | None = None,
        created_by: str | None = None,
    ) -> list[StoredTemplate]:
        """Public templates plus the private ones of ``created_by``, newest first."""
        visible = TemplateModel.is_public == True  # noqa: E712
        if created_by is not None:
            visible = or_(visible, TemplateModel.created_by == created_by)

        statement = select(TemplateModel).where(visible).order_by(TemplateModel.created_at.desc())
        if category is not None:
            statement = statement.where(TemplateModel.category == category)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            templates = result.scalars().all()
        return [self._to_stored_template(t) for t in templates]

    def _to_stored_template(self, db_template: TemplateModel) -> StoredTemplate:
        from ..engine.types import StoredTemplate

        return StoredTemplate(
            id=db_template.id,
            name=db_template.name,
            description=db_template.description,
            category=db_template.category,
            template_data=db_template.template_data,
            is_public=db_template.is_public,
            created_by=db_template.created_by,
            created_at=db_template.created_at,
        )
