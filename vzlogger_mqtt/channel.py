from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import Protocol


class AggMode(enum.Enum):
    NONE = "none"
    MAX = "max"
    AVG = "avg"
    SUM = "sum"

    @classmethod
    def parse(cls, value: str | None) -> AggMode:
        if not value:
            return cls.NONE
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown aggregation mode: {value}") from None


class Channel(Protocol):
    """Read-only view of a metering channel."""

    @property
    def name(self) -> str: ...

    @property
    def uuid(self) -> str: ...

    @property
    def has_aggregation(self) -> bool: ...


class Reading(Protocol):
    @property
    def value(self) -> float: ...


@dataclass(frozen=True)
class MeterChannel:
    name: str
    uuid: str
    aggmode: AggMode = AggMode.NONE

    @property
    def has_aggregation(self) -> bool:
        return self.aggmode is not AggMode.NONE


@dataclass(frozen=True)
class MeterReading:
    value: float
