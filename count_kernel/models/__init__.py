"""ORM models for the count kernel."""

from count_kernel.models.count import CountAreaModel, CountItemModel, CountSessionModel

__all__ = [
    "CountSessionModel",
    "CountAreaModel",
    "CountItemModel",
]
