"""
Typed Exception Hierarchy for the Count Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (an HTTP layer, a mobile sync endpoint, a batch importer) decide how
a rejected count operation is presented to the person holding the clipboard.
They must be able to do that without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        service.record_item(...)
    except Exception as e:
        if "completed" in str(e):
            show_area_closed_banner()

Example - RIGHT way:
    try:
        service.record_item(...)
    except AreaAlreadyCompletedError as e:
        show_area_closed_banner(area_id=e.area_id)
        api_response(code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from CountKernelError:

    CountKernelError (base)
    |
    +-- LifecycleError
    |   +-- InvalidTransitionError
    |   +-- AreaAlreadyCompletedError
    |   +-- SessionWithoutAreasError
    |
    +-- QuantityError
    |   +-- InvalidQuantityError
    |
    +-- NotFoundError
    |   +-- SessionNotFoundError
    |   +-- AreaNotFoundError
    |   +-- CountItemNotFoundError
    |
    +-- ConcurrencyError
        +-- ConcurrentModificationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Lifecycle       | INVALID_TRANSITION          | Action not legal from current status
                | AREA_ALREADY_COMPLETED      | Item write against a closed area
                | SESSION_WITHOUT_AREAS       | Session created or started with no areas
----------------|-----------------------------|-----------------------------------------
Quantity        | INVALID_QUANTITY            | full_units < 0 / non-integral, or
                |                             | partial_unit outside [0, 1)
----------------|-----------------------------|-----------------------------------------
Not found       | SESSION_NOT_FOUND           | Session id unknown
                | AREA_NOT_FOUND              | Area id not owned by the session
                | COUNT_ITEM_NOT_FOUND        | No item for product in the area
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Lock timeout or stale version

===============================================================================
HANDLING PATTERNS
===============================================================================

1. NONE OF THESE ARE FATAL.  Every error is raised before any state is
   written; the session is exactly as it was before the call.

2. CONCURRENCY ERRORS ARE RETRYABLE:

    except ConcurrentModificationError:
        return retry_later(session_id)

3. NEVER "FIX" THE INPUT.  A negative full_units is rejected, never clamped.
"""


class CountKernelError(Exception):
    """
    Base exception for all count kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "COUNT_KERNEL_ERROR"


# Lifecycle exceptions


class LifecycleError(CountKernelError):
    """Base exception for session/area state machine violations."""

    code: str = "LIFECYCLE_ERROR"


class InvalidTransitionError(LifecycleError):
    """
    Requested state change is not legal from the current status.

    Raised for e.g. starting a non-DRAFT session, completing an area that is
    already COMPLETED, or approving a session that is not COMPLETED.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, current_status: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: "
            f"not allowed from status {current_status}"
        )


class AreaAlreadyCompletedError(LifecycleError):
    """An item write was attempted against a COMPLETED area."""

    code: str = "AREA_ALREADY_COMPLETED"

    def __init__(self, session_id: str, area_id: str):
        self.session_id = session_id
        self.area_id = area_id
        super().__init__(
            f"Area {area_id} of count session {session_id} is already completed"
        )


class SessionWithoutAreasError(LifecycleError):
    """
    A count session must own at least one area.

    With no areas "every area COMPLETED" holds vacuously while no
    ``complete_area`` call can ever close the session.
    """

    code: str = "SESSION_WITHOUT_AREAS"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Count session {session_id} has no areas to count")


# Quantity exceptions


class QuantityError(CountKernelError):
    """Base exception for counted quantity errors."""

    code: str = "QUANTITY_ERROR"


class InvalidQuantityError(QuantityError):
    """full_units is negative or non-integral, or partial_unit is outside [0, 1)."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


# Not-found exceptions


class NotFoundError(CountKernelError):
    """Base exception for referential integrity failures."""

    code: str = "NOT_FOUND"


class SessionNotFoundError(NotFoundError):
    """Count session with given ID was not found."""

    code: str = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Count session not found: {session_id}")


class AreaNotFoundError(NotFoundError):
    """Area with given ID is not owned by the count session."""

    code: str = "AREA_NOT_FOUND"

    def __init__(self, session_id: str, area_id: str):
        self.session_id = session_id
        self.area_id = area_id
        super().__init__(f"Area {area_id} not found in count session {session_id}")


class CountItemNotFoundError(NotFoundError):
    """No count item exists for the product in the area."""

    code: str = "COUNT_ITEM_NOT_FOUND"

    def __init__(self, area_id: str, product_id: str):
        self.area_id = area_id
        self.product_id = product_id
        super().__init__(f"No count item for product {product_id} in area {area_id}")


# Concurrency exceptions


class ConcurrencyError(CountKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """
    Conflicting concurrent operation on the same count session.

    Raised when the per-session lock cannot be acquired in time, or when the
    persisted version no longer matches the version that was read.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(
            f"Concurrent modification of count session {session_id}: {reason}"
        )
