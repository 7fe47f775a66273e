"""
count_engines.lifecycle -- Count session and storage area state machine.

Responsibility:
    Apply the legal transitions of a count session (start, record an item,
    remove an item, complete an area, approve) to a frozen ``CountSession``
    and return the resulting session.  Also derives the "current" area a
    counter should be working in.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Transitions are checked against ``SESSION_WORKFLOW`` / ``AREA_WORKFLOW``
    from ``count_kernel.domain.workflow``.  Consumed by
    ``count_services.count_service.CountService``.

Invariants enforced:
    - Completion closure: a session is COMPLETED iff every owned area is
      COMPLETED.  The session-level COMPLETED transition happens exactly
      once, inside the ``complete_area`` call that closes the last area.
    - Closed areas are immutable: no item write or removal is accepted once
      an area is COMPLETED.
    - No partial writes: every check runs before a new session value is
      built; the input session is never mutated.
    - Derived fields (total_quantity, total_value, items_counted) are
      recomputed here, never taken from the caller.
    - Current area is derived from persisted area statuses only.

Failure modes:
    - InvalidTransitionError: action not legal from the current status.
    - AreaAlreadyCompletedError: item write against a COMPLETED area.
    - InvalidQuantityError: full_units / partial_unit out of range.
    - AreaNotFoundError: area id not owned by the session.
    - CountItemNotFoundError: removing an item that was never recorded.
    - SessionWithoutAreasError: starting a session that owns no areas.

Usage:
    lifecycle = CountLifecycle()
    session = lifecycle.record_item(
        session, area_id=bar.id, product_id="VODKA-750",
        full_units=6, partial_unit=Decimal("0.4"),
        counted_by_id=actor_id, counted_at=clock.now(),
    )
    completion = lifecycle.complete_area(session, area_id=bar.id, now=clock.now())
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Mapping
from uuid import UUID

from count_kernel.domain.count import (
    ZERO,
    CountArea,
    CountItem,
    CountSession,
    CountStatus,
)
from count_kernel.domain.workflow import AREA_WORKFLOW, SESSION_WORKFLOW
from count_kernel.exceptions import (
    AreaAlreadyCompletedError,
    CountItemNotFoundError,
    InvalidTransitionError,
    SessionWithoutAreasError,
)
from count_kernel.logging_config import get_logger

logger = get_logger("engines.lifecycle")


@dataclass(frozen=True)
class AreaCompletion:
    """
    Result of completing an area.

    ``session_completed`` is True only for the call that closed the last
    open area; ``next_area_id`` is the area counting continues in (None once
    the session is complete).
    """

    session: CountSession
    area_id: UUID
    session_completed: bool
    next_area_id: UUID | None = None


def current_area(session: CountSession) -> CountArea | None:
    """
    The area a counter should be working in.

    First area (stored order) whose status is not COMPLETED; if every area
    is COMPLETED, the last area, for read-only review.  None when the session
    has no areas.
    """
    if not session.areas:
        return None
    for area in session.areas:
        if not area.is_completed:
            return area
    return session.areas[-1]


def summarize(
    session: CountSession,
    unit_costs: Mapping[str, Decimal] | None = None,
) -> CountSession:
    """
    Recompute the derived session summary.

    total_value = sum(total_quantity * unit_cost) over every item in every
    area (products without a cost contribute 0); items_counted = number of
    distinct products counted.
    """
    costs = unit_costs or {}
    total_value = ZERO
    products: set[str] = set()
    for _, item in session.iter_items():
        products.add(item.product_id)
        total_value += item.total_quantity * costs.get(item.product_id, ZERO)
    return replace(session, total_value=total_value, items_counted=len(products))


class CountLifecycle:
    """
    Pure state machine for count sessions.

    Contract:
        Every method takes a ``CountSession`` and returns a new one (or an
        ``AreaCompletion`` wrapping one).  No I/O, no clock access: all
        timestamps are passed in by the caller.
    Guarantees:
        - Rejections raise before any value is built.
        - A DRAFT session is started implicitly by its first item write or
          area completion ("first entry"); ``started_at`` is set once.
    Non-goals:
        - Does not serialize concurrent callers; that is the orchestration
          layer's per-session lock.
        - Does not re-open completed areas.
    """

    def start(self, session: CountSession, now: datetime) -> CountSession:
        """
        DRAFT -> IN_PROGRESS.

        Raises:
            SessionWithoutAreasError: the session owns no areas, so it could
                never be completed.
        """
        if not session.areas:
            raise SessionWithoutAreasError(str(session.id))
        transition = SESSION_WORKFLOW.require(
            session.status, "start", "count_session", str(session.id),
        )
        logger.info(
            "count_session_started",
            extra={"session_id": str(session.id), "location_id": session.location_id},
        )
        return replace(session, status=transition.to_state, started_at=now)

    def record_item(
        self,
        session: CountSession,
        area_id: UUID,
        product_id: str,
        full_units: int,
        partial_unit: Decimal | str | int = ZERO,
        *,
        counted_by_id: UUID,
        counted_at: datetime,
        notes: str | None = None,
    ) -> CountSession:
        """
        Upsert one product's count in an open area.

        Re-recording a product in the same area overwrites its previous
        entry (last write wins).  A PENDING area becomes IN_PROGRESS.

        Raises:
            AreaNotFoundError, AreaAlreadyCompletedError,
            InvalidTransitionError, InvalidQuantityError.
        """
        area = session.area(area_id)
        if area.is_completed:
            raise AreaAlreadyCompletedError(str(session.id), str(area_id))
        # CountItem validates the quantities and derives total_quantity.
        item = CountItem(
            product_id=product_id,
            full_units=full_units,
            partial_unit=partial_unit,
            counted_by_id=counted_by_id,
            counted_at=counted_at,
            notes=notes,
        )
        session = self._ensure_counting(session, counted_at, "record")
        area_transition = AREA_WORKFLOW.require(
            area.status, "record", "count_area", str(area_id),
        )
        updated_area = replace(
            area.with_item(item), status=area_transition.to_state,
        )

        logger.info(
            "count_item_recorded",
            extra={
                "session_id": str(session.id),
                "area_id": str(area_id),
                "product_id": product_id,
                "full_units": item.full_units,
                "partial_unit": str(item.partial_unit),
                "total_quantity": str(item.total_quantity),
                "overwrote": product_id in area.items,
            },
        )
        return session.with_area(updated_area)

    def remove_item(
        self,
        session: CountSession,
        area_id: UUID,
        product_id: str,
    ) -> CountSession:
        """
        Delete a product's count from an open area.

        Raises:
            AreaNotFoundError, AreaAlreadyCompletedError,
            CountItemNotFoundError, InvalidTransitionError.
        """
        area = session.area(area_id)
        if area.is_completed:
            raise AreaAlreadyCompletedError(str(session.id), str(area_id))
        if not SESSION_WORKFLOW.allows(session.status, "record"):
            raise InvalidTransitionError(
                "count_session", str(session.id), session.status.value, "remove_item",
            )
        if product_id not in area.items:
            raise CountItemNotFoundError(str(area_id), product_id)

        logger.info(
            "count_item_removed",
            extra={
                "session_id": str(session.id),
                "area_id": str(area_id),
                "product_id": product_id,
            },
        )
        return session.with_area(area.without_item(product_id))

    def complete_area(
        self,
        session: CountSession,
        area_id: UUID,
        now: datetime,
    ) -> AreaCompletion:
        """
        Close an area; close the session when it was the last open area.

        An area with no items may be completed ("nothing found here").

        Raises:
            AreaNotFoundError: area not owned by the session.
            InvalidTransitionError: area already COMPLETED, or the session
                is COMPLETED/APPROVED.
        """
        area = session.area(area_id)
        area_transition = AREA_WORKFLOW.require(
            area.status, "complete", "count_area", str(area_id),
        )
        session = self._ensure_counting(session, now, "complete_area")
        session = session.with_area(replace(area, status=area_transition.to_state))

        logger.info(
            "count_area_completed",
            extra={
                "session_id": str(session.id),
                "area_id": str(area_id),
                "area_name": area.name,
                "item_count": len(area.items),
                "areas_completed": session.completed_area_count,
                "areas_total": len(session.areas),
            },
        )

        if not session.all_areas_completed:
            nxt = current_area(session)
            return AreaCompletion(
                session=session,
                area_id=area_id,
                session_completed=False,
                next_area_id=nxt.id if nxt is not None else None,
            )

        # INVARIANT: completion closure -- the guard of the "complete"
        # transition is exactly "every area COMPLETED".
        session_transition = SESSION_WORKFLOW.require(
            session.status, "complete", "count_session", str(session.id),
        )
        session = replace(
            session, status=session_transition.to_state, completed_at=now,
        )
        logger.info(
            "count_session_completed",
            extra={
                "session_id": str(session.id),
                "areas_total": len(session.areas),
            },
        )
        return AreaCompletion(
            session=session, area_id=area_id, session_completed=True,
        )

    def approve(
        self,
        session: CountSession,
        approver_id: UUID,
        now: datetime,
    ) -> CountSession:
        """COMPLETED -> APPROVED (terminal)."""
        transition = SESSION_WORKFLOW.require(
            session.status, "approve", "count_session", str(session.id),
        )
        logger.info(
            "count_session_approved",
            extra={"session_id": str(session.id), "approver_id": str(approver_id)},
        )
        return replace(
            session,
            status=transition.to_state,
            approved_at=now,
            approved_by_id=approver_id,
        )

    def _ensure_counting(
        self, session: CountSession, now: datetime, action: str,
    ) -> CountSession:
        if session.status == CountStatus.DRAFT:
            session = self.start(session, now)
        if not SESSION_WORKFLOW.allows(session.status, "record"):
            raise InvalidTransitionError(
                "count_session", str(session.id), session.status.value, action,
            )
        return session
