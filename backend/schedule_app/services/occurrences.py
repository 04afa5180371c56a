"""
Value types for occurrences shown on the schedule.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from ..exceptions import InvalidArgument
from ..models import OccurrenceKind


@dataclass(frozen=True)
class OccurrenceKey:
    """
    Identity of an occurrence: a series date, or a standalone event's date.
    Exactly one of `series_id` / `event_id` is set.
    """

    church_id: int
    occurrence_date: date
    series_id: Optional[int] = None
    event_id: Optional[int] = None

    def __post_init__(self):
        if (self.series_id is None) == (self.event_id is None):
            raise InvalidArgument("An occurrence key needs exactly one of series_id or event_id")

    @classmethod
    def for_series(cls, series_id, church_id, occurrence_date):
        return cls(church_id=church_id, occurrence_date=occurrence_date, series_id=series_id)

    @classmethod
    def for_event(cls, event_id, church_id, occurrence_date):
        return cls(church_id=church_id, occurrence_date=occurrence_date, event_id=event_id)

    def __str__(self):
        if self.series_id is not None:
            return f"series:{self.series_id}@{self.occurrence_date.isoformat()}"
        return f"event:{self.event_id}@{self.occurrence_date.isoformat()}"


@dataclass(frozen=True)
class Occurrence:
    key: OccurrenceKey
    kind: OccurrenceKind
    start: datetime
    end: datetime
    name: str
    description: str = ''
    event_id: Optional[int] = None
    exception_id: Optional[int] = None

    @property
    def series_id(self) -> Optional[int]:
        return self.key.series_id

    @property
    def church_id(self) -> int:
        return self.key.church_id

    @property
    def occurrence_date(self) -> date:
        return self.key.occurrence_date

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_recurring_instance(self) -> bool:
        return self.key.series_id is not None

    @classmethod
    def from_override(cls, exception):
        event = exception.event
        return cls(
            key=OccurrenceKey.for_series(exception.series_id, event.church_id, exception.occurrence_date),
            kind=OccurrenceKind.OVERRIDE,
            start=event.start,
            end=event.end,
            name=event.name,
            description=event.description,
            event_id=event.id,
            exception_id=exception.id,
        )

    @classmethod
    def from_event(cls, event):
        return cls(
            key=OccurrenceKey.for_event(event.id, event.church_id, event.occurrence_date),
            kind=OccurrenceKind.STANDALONE,
            start=event.start,
            end=event.end,
            name=event.name,
            description=event.description,
            event_id=event.id,
        )

    def cancelled(self, exception):
        """This virtual occurrence as the tombstone left by `exception`."""
        return Occurrence(
            key=self.key,
            kind=OccurrenceKind.CANCELLATION,
            start=self.start,
            end=self.end,
            name=self.name,
            description=exception.reason or self.description,
            exception_id=exception.id,
        )
