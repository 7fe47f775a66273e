"""
CountRepository -- persistence of count sessions through the ORM.

Responsibility:
    Convert between ``count_sessions`` / ``count_areas`` / ``count_items``
    rows and the frozen ``CountSession`` value, and write a transformed
    session back as one unit guarded by its version.

Architecture position:
    Services -- imperative shell.  Works inside the caller's SQLAlchemy
    session and transaction; never commits or rolls back.

Invariants enforced:
    - Loads take a row lock on the session row (``SELECT ... FOR UPDATE``
      on PostgreSQL) and always refresh from the database
      (``populate_existing``), never from a stale identity map.
    - Saves are compare-and-swap on ``version``: the UPDATE matches only
      the version that was loaded.  A concurrent writer makes it match
      zero rows and the save raises ``ConcurrentModificationError``.
    - Items are upserted per (area, product) and items missing from the
      domain value are deleted, so the rows mirror the value exactly.
    - total_quantity columns are written from the domain value only.

Failure modes:
    - SessionNotFoundError: no row for the session id.
    - AreaNotFoundError: the value carries an area the session row does
      not own.
    - ConcurrentModificationError: version mismatch on save.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from count_kernel.domain.count import CountItem, CountSession
from count_kernel.exceptions import (
    AreaNotFoundError,
    ConcurrentModificationError,
    SessionNotFoundError,
)
from count_kernel.logging_config import get_logger
from count_kernel.models.count import (
    CountAreaModel,
    CountItemModel,
    CountSessionModel,
)

logger = get_logger("services.repository")


class CountRepository:
    """SQLAlchemy-backed store of count sessions."""

    def __init__(self, session: Session):
        self._session = session

    def create(self, count_session: CountSession, actor_id: UUID) -> CountSession:
        """Insert a new session with its areas (and any pre-seeded items)."""
        model = CountSessionModel.from_dto(count_session, created_by_id=actor_id)
        self._session.add(model)
        self._session.flush()
        logger.info(
            "count_session_created",
            extra={
                "session_id": str(count_session.id),
                "location_id": count_session.location_id,
                "area_count": len(count_session.areas),
            },
        )
        return count_session

    def load(self, session_id: UUID, for_update: bool = True) -> CountSession:
        """Read a session with its areas and items as a frozen value."""
        return self._get_model(session_id, for_update).to_dto()

    def list_for_location(self, location_id: str) -> list[CountSession]:
        models = self._session.execute(
            select(CountSessionModel)
            .where(CountSessionModel.location_id == location_id)
            .order_by(CountSessionModel.created_at, CountSessionModel.id)
        ).scalars().all()
        return [model.to_dto() for model in models]

    def save(
        self,
        count_session: CountSession,
        expected_version: int,
        actor_id: UUID,
    ) -> CountSession:
        """
        Write a transformed session back and bump its version.

        Returns the session value carrying the new version.
        """
        model = self._get_model(count_session.id, for_update=True)
        if model.version != expected_version:
            raise ConcurrentModificationError(
                str(count_session.id),
                f"expected version {expected_version}, found {model.version}",
            )

        model.status = count_session.status.value
        model.count_type = count_session.count_type.value
        model.name = count_session.name
        model.started_at = count_session.started_at
        model.completed_at = count_session.completed_at
        model.approved_at = count_session.approved_at
        model.approved_by_id = count_session.approved_by_id
        model.notes = count_session.notes
        model.total_value = count_session.total_value
        model.items_counted = count_session.items_counted
        model.updated_by_id = actor_id

        areas_by_id = {area.id: area for area in model.areas}
        for area in count_session.areas:
            area_model = areas_by_id.get(area.id)
            if area_model is None:
                raise AreaNotFoundError(str(count_session.id), str(area.id))
            area_model.status = area.status.value
            self._sync_items(area_model, area.items)

        self._session.flush()

        # INVARIANT: compare-and-swap on version; zero rows means another
        # writer committed first.
        new_version = expected_version + 1
        result = self._session.execute(
            update(CountSessionModel)
            .where(CountSessionModel.id == count_session.id)
            .where(CountSessionModel.version == expected_version)
            .values(version=new_version)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(
                str(count_session.id),
                f"version {expected_version} was superseded",
            )
        self._session.expire(model, ["version"])

        logger.debug(
            "count_session_saved",
            extra={
                "session_id": str(count_session.id),
                "status": count_session.status.value,
                "version": new_version,
            },
        )
        return replace(count_session, version=new_version)

    def _sync_items(
        self, area_model: CountAreaModel, items: Mapping[str, CountItem],
    ) -> None:
        rows = {row.product_id: row for row in area_model.items}
        for product_id, item in items.items():
            row = rows.get(product_id)
            if row is None:
                area_model.items.append(CountItemModel.from_dto(item))
            else:
                row.apply(item)
        for product_id, row in rows.items():
            if product_id not in items:
                # delete-orphan cascade issues the DELETE
                area_model.items.remove(row)

    def _get_model(self, session_id: UUID, for_update: bool) -> CountSessionModel:
        stmt = select(CountSessionModel).where(CountSessionModel.id == session_id)
        if for_update:
            stmt = stmt.with_for_update()
        model = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise SessionNotFoundError(str(session_id))
        return model
