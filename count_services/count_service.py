"""
Count Service (``count_services.count_service``).

Responsibility
--------------
Orchestrates physical inventory counts by composing the pure count engines
(``CountLifecycle``, ``ReconciliationCalculator``, ``VarianceAggregator``,
``build_count_report``, ``build_adjustments``) with persistence
(``CountRepository``) and the catalog / ledger collaborators.  This is a
**thin glue layer**: every business rule lives in an engine.

Architecture
------------
Layer: **Services** -- stateful orchestration wrapper.

1. Takes the per-session lock (``SessionLockRegistry``).
2. Loads the session as a frozen value (row lock on PostgreSQL).
3. Applies one lifecycle transition and recomputes derived fields.
4. Saves with a version compare-and-swap and commits.

Invariants
----------
- Each public mutating method owns its transaction boundary: commit on
  success, rollback on any failure.  A rejected operation leaves the
  stored session exactly as it was.
- Completion closure: the session COMPLETED transition and its variance
  aggregation happen once, inside the ``complete_area`` call that closes
  the last open area, under the session lock.
- total_value / items_counted are recomputed from catalog unit costs on
  every item write and on completion, never taken from the caller.
- The current area is derived from stored area statuses only, so a
  restarted client resumes where counting stopped.
- Stock adjustments reach the inventory ledger only after the approval
  has committed; a rejected approval never posts.

Failure Modes
-------------
- ``SessionNotFoundError`` / ``AreaNotFoundError`` / ``CountItemNotFoundError``.
- ``InvalidTransitionError`` / ``AreaAlreadyCompletedError``.
- ``SessionWithoutAreasError`` when a session would have no areas.
- ``InvalidQuantityError`` for bad full/partial units.
- ``ConcurrentModificationError`` on lock timeout or version conflict.

Usage::

    service = CountService(session, catalog, clock=clock)
    count = service.create_session("Weekly count", "BAR-1", actor_id)
    bar = count.areas[0]
    service.record_item(count.id, bar.id, "VODKA-750", 6, Decimal("0.4"),
                        counted_by_id=actor_id)
    result = service.complete_area(count.id, bar.id, actor_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from count_config import CountConfig, get_active_config
from count_engines.adjustment import StockAdjustment, build_adjustments
from count_engines.lifecycle import CountLifecycle, current_area, summarize
from count_engines.reconciliation import ReconciliationCalculator
from count_engines.report import (
    CountReport,
    SignificanceThresholds,
    build_count_report,
)
from count_engines.variance import HUNDRED, VarianceAggregator, VarianceResult
from count_kernel.domain.clock import Clock, SystemClock
from count_kernel.domain.count import (
    ZERO,
    AreaStatus,
    CountArea,
    CountSession,
    CountStatus,
    CountType,
)
from count_kernel.exceptions import InvalidTransitionError, SessionWithoutAreasError
from count_kernel.logging_config import LogContext, get_logger
from count_services.ports import CatalogReader, InventoryLedger
from count_services.repository import CountRepository
from count_services.session_lock import SessionLockRegistry

logger = get_logger("services.count")

T = TypeVar("T")

# One registry per process unless the caller injects its own.
_DEFAULT_LOCKS = SessionLockRegistry()

_FINALIZED = (CountStatus.COMPLETED, CountStatus.APPROVED)


@dataclass(frozen=True)
class AreaState:
    area_id: UUID
    name: str
    order: int
    status: AreaStatus
    item_count: int

    @property
    def is_completed(self) -> bool:
        return self.status == AreaStatus.COMPLETED


@dataclass(frozen=True)
class SessionState:
    """What a counting client needs to resume a session."""

    session_id: UUID
    status: CountStatus
    current_area_id: UUID | None
    areas: tuple[AreaState, ...]
    areas_completed: int
    total_areas: int
    progress_percent: Decimal
    total_value: Decimal
    items_counted: int
    version: int

    @property
    def is_read_only(self) -> bool:
        return self.status in _FINALIZED


@dataclass(frozen=True)
class CompletionResult:
    """
    Outcome of ``CountService.complete_area``.

    ``variance`` is set only on the call that completed the session.
    """

    session: CountSession
    area_id: UUID
    session_completed: bool
    next_area_id: UUID | None = None
    variance: VarianceResult | None = None


@dataclass(frozen=True)
class ApprovalResult:
    session: CountSession
    variance: VarianceResult
    adjustments: tuple[StockAdjustment, ...]


class CountService:
    """
    Orchestrates count sessions through engines, repository and ports.

    Contract
    --------
    Every public method takes ids and plain values, loads the session,
    delegates the rules to the engines and persists the result.  Mutating
    methods run under the session lock and commit on success, roll back
    on failure.

    Non-goals
    ---------
    - Does NOT decide who may count or approve (identity is an input).
    - Does NOT own catalog data or stock ledgers; they are ports.
    """

    def __init__(
        self,
        session: Session,
        catalog: CatalogReader,
        clock: Clock | None = None,
        config: CountConfig | None = None,
        ledger: InventoryLedger | None = None,
        locks: SessionLockRegistry | None = None,
        aggregator: VarianceAggregator | None = None,
    ):
        self._session = session
        self._catalog = catalog
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._ledger = ledger
        self._locks = locks or _DEFAULT_LOCKS
        self._repo = CountRepository(session)

        # Stateless engines
        self._lifecycle = CountLifecycle()
        self._reconciliation = ReconciliationCalculator()
        self._aggregator = aggregator or VarianceAggregator()

    # =========================================================================
    # Session setup
    # =========================================================================

    def create_session(
        self,
        name: str,
        location_id: str,
        actor_id: UUID,
        area_names: Sequence[str] | None = None,
        count_type: CountType = CountType.FULL,
        notes: str | None = None,
    ) -> CountSession:
        """
        Create a DRAFT session pre-populated with its areas.

        ``area_names`` gives the areas in counting order; when omitted the
        configured default storage areas are used.

        Raises:
            SessionWithoutAreasError: no area names given and none configured.
        """
        names = tuple(area_names) if area_names is not None else (
            self._config.default_storage_areas
        )
        session_id = uuid4()
        if not names:
            raise SessionWithoutAreasError(str(session_id))
        count_session = CountSession(
            id=session_id,
            name=name,
            location_id=location_id,
            count_type=count_type,
            notes=notes,
            areas=tuple(
                CountArea(id=uuid4(), session_id=session_id, name=area_name, order=i)
                for i, area_name in enumerate(names)
            ),
        )
        with LogContext.bind(session_id=session_id, actor_id=actor_id):
            try:
                created = self._repo.create(count_session, actor_id)
                self._session.commit()
                return created
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Counting
    # =========================================================================

    def start(self, session_id: UUID, actor_id: UUID) -> CountSession:
        """Explicit DRAFT -> IN_PROGRESS (the first item write also starts)."""
        saved, _ = self._mutate(
            session_id, actor_id, "start",
            lambda s: (self._lifecycle.start(s, self._clock.now()), None),
        )
        return saved

    def record_item(
        self,
        session_id: UUID,
        area_id: UUID,
        product_id: str,
        full_units: int,
        partial_unit: Decimal | str | int = ZERO,
        *,
        counted_by_id: UUID,
        notes: str | None = None,
    ) -> CountSession:
        """Upsert a product's count in an open area (last write wins)."""

        def apply(current: CountSession) -> tuple[CountSession, None]:
            updated = self._lifecycle.record_item(
                current,
                area_id=area_id,
                product_id=product_id,
                full_units=full_units,
                partial_unit=partial_unit,
                counted_by_id=counted_by_id,
                counted_at=self._clock.now(),
                notes=notes,
            )
            return self._summarize(updated), None

        saved, _ = self._mutate(
            session_id, counted_by_id, "record_item", apply, area_id=area_id,
        )
        return saved

    def remove_item(
        self,
        session_id: UUID,
        area_id: UUID,
        product_id: str,
        actor_id: UUID,
    ) -> CountSession:
        """Delete a product's count from an open area."""
        saved, _ = self._mutate(
            session_id, actor_id, "remove_item",
            lambda s: (
                self._summarize(self._lifecycle.remove_item(s, area_id, product_id)),
                None,
            ),
            area_id=area_id,
        )
        return saved

    def complete_area(
        self,
        session_id: UUID,
        area_id: UUID,
        actor_id: UUID,
    ) -> CompletionResult:
        """
        Close an area.  Closing the last open area completes the session
        and runs the variance aggregation, in the same transaction.
        """

        def apply(current: CountSession) -> tuple[CountSession, CompletionResult]:
            completion = self._lifecycle.complete_area(
                current, area_id=area_id, now=self._clock.now(),
            )
            updated = completion.session
            variance = None
            if completion.session_completed:
                updated = self._summarize(updated)
                variance = self._aggregate(updated)
            return updated, CompletionResult(
                session=updated,
                area_id=area_id,
                session_completed=completion.session_completed,
                next_area_id=completion.next_area_id,
                variance=variance,
            )

        saved, result = self._mutate(
            session_id, actor_id, "complete_area", apply, area_id=area_id,
        )
        return CompletionResult(
            session=saved,
            area_id=result.area_id,
            session_completed=result.session_completed,
            next_area_id=result.next_area_id,
            variance=result.variance,
        )

    def approve(self, session_id: UUID, approver_id: UUID) -> ApprovalResult:
        """
        COMPLETED -> APPROVED.  Stock adjustments for every product whose
        counted total differs from its expected quantity are handed to the
        inventory ledger once the approval has committed.

        A rejected approval (lock timeout, lost version check, invalid
        state) never reaches the ledger.  If the ledger itself fails the
        approval stays committed and the error propagates; the adjustments
        can be re-sent with ``post_adjustments``.
        """

        def apply(current: CountSession) -> tuple[CountSession, ApprovalResult]:
            approved = self._lifecycle.approve(current, approver_id, self._clock.now())
            variance = self._aggregate(approved)
            return approved, ApprovalResult(
                session=approved,
                variance=variance,
                adjustments=build_adjustments(approved, variance),
            )

        saved, result = self._mutate(session_id, approver_id, "approve", apply)
        with LogContext.bind(session_id=session_id, actor_id=approver_id):
            self._post(saved.id, result.adjustments)
        return ApprovalResult(
            session=saved, variance=result.variance, adjustments=result.adjustments,
        )

    def post_adjustments(self, session_id: UUID) -> tuple[StockAdjustment, ...]:
        """
        Rebuild the stock adjustments of an APPROVED session and hand them
        to the ledger again.  Ledgers key adjustments by session id, so a
        repeated post replaces rather than duplicates.

        Raises:
            InvalidTransitionError: session is not APPROVED.
        """
        count_session = self._read(session_id)
        if count_session.status != CountStatus.APPROVED:
            raise InvalidTransitionError(
                "count_session", str(session_id),
                count_session.status.value, "post_adjustments",
            )
        adjustments = build_adjustments(count_session, self._aggregate(count_session))
        with LogContext.bind(session_id=session_id):
            self._post(count_session.id, adjustments)
        return adjustments

    # =========================================================================
    # Queries
    # =========================================================================

    def get_session(self, session_id: UUID) -> CountSession:
        return self._read(session_id)

    def list_sessions(self, location_id: str) -> list[CountSession]:
        """Count history of a location, oldest first."""
        try:
            return self._repo.list_for_location(location_id)
        finally:
            self._session.rollback()

    def get_state(self, session_id: UUID) -> SessionState:
        """Status, current area and per-area completion flags."""
        count_session = self._read(session_id)
        current = current_area(count_session)
        total = len(count_session.areas)
        completed = count_session.completed_area_count
        return SessionState(
            session_id=count_session.id,
            status=count_session.status,
            current_area_id=current.id if current is not None else None,
            areas=tuple(
                AreaState(
                    area_id=area.id,
                    name=area.name,
                    order=area.order,
                    status=area.status,
                    item_count=len(area.items),
                )
                for area in count_session.areas
            ),
            areas_completed=completed,
            total_areas=total,
            progress_percent=(
                Decimal(completed) / Decimal(total) * HUNDRED if total else ZERO
            ),
            total_value=count_session.total_value,
            items_counted=count_session.items_counted,
            version=count_session.version,
        )

    def current_area(self, session_id: UUID) -> CountArea | None:
        return current_area(self._read(session_id))

    def remaining_expected(
        self,
        session_id: UUID,
        product_id: str,
        area_id: UUID | None = None,
    ) -> Decimal:
        """
        Expected quantity of a product still to find in an area (the
        current area when ``area_id`` is omitted).  Always recomputed.
        """
        count_session = self._read(session_id)
        active = self._active_area_id(count_session, area_id)
        par_levels = self._catalog.par_levels(count_session.location_id)
        return self._reconciliation.remaining_expected(
            session=count_session,
            product_id=product_id,
            par_level=par_levels.get(product_id),
            active_area_id=active,
        )

    def expected_targets(
        self,
        session_id: UUID,
        area_id: UUID | None = None,
    ) -> dict[str, Decimal]:
        count_session = self._read(session_id)
        active = self._active_area_id(count_session, area_id)
        return self._reconciliation.expected_targets(
            session=count_session,
            par_levels=self._catalog.par_levels(count_session.location_id),
            active_area_id=active,
        )

    def aggregate(self, session_id: UUID) -> VarianceResult:
        """
        Re-run the variance aggregation of a finalized session (audit).

        Raises:
            InvalidTransitionError: session is not COMPLETED or APPROVED.
        """
        count_session = self._read(session_id)
        if count_session.status not in _FINALIZED:
            raise InvalidTransitionError(
                "count_session", str(session_id),
                count_session.status.value, "aggregate",
            )
        return self._aggregate(count_session)

    def report(self, session_id: UUID) -> CountReport:
        """Count report; variance figures are a preview until COMPLETED."""
        count_session = self._read(session_id)
        costs = self._catalog.unit_costs(count_session.location_id)
        return build_count_report(
            session=count_session,
            variance=self._aggregate(count_session),
            unit_costs=costs,
            thresholds=SignificanceThresholds(
                quantity=self._config.significant_variance_quantity,
                ratio=self._config.significant_variance_ratio,
            ),
            value_places=self._config.value_places,
            currency=self._config.currency,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _mutate(
        self,
        session_id: UUID,
        actor_id: UUID,
        action: str,
        apply: Callable[[CountSession], tuple[CountSession, T]],
        area_id: UUID | None = None,
    ) -> tuple[CountSession, T]:
        with LogContext.bind(session_id=session_id, actor_id=actor_id, area_id=area_id):
            with self._locks.hold(session_id, self._config.lock_timeout_seconds):
                try:
                    current = self._repo.load(session_id)
                    updated, outcome = apply(current)
                    saved = self._repo.save(
                        updated, expected_version=current.version, actor_id=actor_id,
                    )
                    self._session.commit()
                except Exception as exc:
                    self._session.rollback()
                    logger.warning(
                        "count_operation_rejected",
                        extra={
                            "action": action,
                            "error_code": getattr(exc, "code", type(exc).__name__),
                        },
                        exc_info=True,
                    )
                    raise
            logger.info(
                "count_operation_committed",
                extra={
                    "action": action,
                    "status": saved.status.value,
                    "version": saved.version,
                },
            )
            return saved, outcome

    def _read(self, session_id: UUID) -> CountSession:
        try:
            return self._repo.load(session_id, for_update=False)
        finally:
            # Reads never hold a transaction open.
            self._session.rollback()

    def _summarize(self, count_session: CountSession) -> CountSession:
        return summarize(
            count_session, self._catalog.unit_costs(count_session.location_id),
        )

    def _post(
        self, session_id: UUID, adjustments: tuple[StockAdjustment, ...],
    ) -> None:
        if self._ledger is None:
            logger.info(
                "count_adjustments_built",
                extra={"adjustment_count": len(adjustments), "ledger_attached": False},
            )
            return
        try:
            self._ledger.record_adjustments(session_id, adjustments)
        except Exception:
            logger.error(
                "count_adjustments_post_failed",
                extra={"adjustment_count": len(adjustments)},
                exc_info=True,
            )
            raise
        logger.info(
            "count_adjustments_posted",
            extra={"adjustment_count": len(adjustments), "ledger_attached": True},
        )

    def _aggregate(self, count_session: CountSession) -> VarianceResult:
        return self._aggregator.aggregate(
            session=count_session,
            par_levels=self._catalog.par_levels(count_session.location_id),
            unit_costs=self._catalog.unit_costs(count_session.location_id),
        )

    @staticmethod
    def _active_area_id(count_session: CountSession, area_id: UUID | None) -> UUID:
        if area_id is not None:
            return area_id
        current = current_area(count_session)
        if current is None:
            raise InvalidTransitionError(
                "count_session", str(count_session.id),
                count_session.status.value, "remaining_expected",
            )
        return current.id
