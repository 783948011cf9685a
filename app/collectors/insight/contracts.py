"""Collaborator contracts for insight collection: lookups, list options and records."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

from app.services.insight.errors import (
    DeploymentFetchError,
    InsightCollectorError,
    MetricKindValidationError,
    TransientStoreError,
)
from app.services.insight.records import DeploymentRecord, DeploymentStatus

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    """Lookup hit carrying the stored value."""

    value: T

    def or_else(self, _default_factory: Callable[[], T]) -> T:
        return self.value


class NotFound:
    """Lookup miss; absence is an expected state, not an error."""

    _instance: "NotFound | None" = None

    def __new__(cls) -> "NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def or_else(self, default_factory: Callable[[], T]) -> T:
        return default_factory()

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = NotFound()

LoadResult = Union[Found[T], NotFound]


class FilterOperator(str, enum.Enum):
    GTE = ">="
    LT = "<"


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, slots=True)
class ListFilter:
    """Single conjunctive filter term: `field operator value`."""

    field: str
    operator: FilterOperator
    value: Any

    def matches(self, record: Any) -> bool:
        actual = getattr(record, self.field)
        if self.operator == FilterOperator.GTE:
            return actual >= self.value
        return actual < self.value


@dataclass(frozen=True, slots=True)
class Order:
    field: str
    direction: SortDirection = SortDirection.DESC


@dataclass(frozen=True, slots=True)
class ListOptions:
    """Record store page request."""

    filters: tuple[ListFilter, ...] = ()
    orders: tuple[Order, ...] = ()
    page_size: int = 50


__all__ = [
    "DeploymentFetchError",
    "DeploymentRecord",
    "DeploymentStatus",
    "FilterOperator",
    "Found",
    "InsightCollectorError",
    "ListFilter",
    "ListOptions",
    "LoadResult",
    "MetricKindValidationError",
    "NOT_FOUND",
    "NotFound",
    "Order",
    "SortDirection",
    "TransientStoreError",
]
