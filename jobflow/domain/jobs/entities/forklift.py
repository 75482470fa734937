"""Equipment record holding the hourmeter and its reading history."""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import Field

from ...shared.base import AggregateRoot, ValueObject, utcnow
from ...shared.validation import BusinessRuleValidators
from ..value_objects import Actor, HourmeterFlagReason, HourmeterSource


class HourmeterHistoryEntry(ValueObject):
    id: UUID = Field(default_factory=uuid4)
    reading: int = Field(ge=0)
    previous_reading: int | None = None
    job_id: UUID | None = None
    flag_reasons: tuple[HourmeterFlagReason, ...] = ()
    source: HourmeterSource = HourmeterSource.JOB_START
    recorded_by_id: str | None = None
    recorded_at: datetime = Field(default_factory=utcnow)
    invalidated: bool = False


class Forklift(AggregateRoot):
    """
    A customer forklift.

    ``hourmeter`` is the highest accepted reading; it never moves backwards.
    Every reading, flagged or not, lands in ``history``.
    """

    serial_number: str = Field(min_length=1, max_length=100)
    customer_id: str | None = None
    hourmeter: int | None = Field(None, ge=0)
    avg_daily_usage_hours: float = Field(8.0, gt=0)
    history: list[HourmeterHistoryEntry] = Field(default_factory=list)

    @property
    def has_history(self) -> bool:
        return self.hourmeter is not None

    def record_reading(
        self,
        reading: int,
        actor: Actor,
        job_id: UUID | None = None,
        source: HourmeterSource = HourmeterSource.JOB_START,
        flag_reasons: tuple[HourmeterFlagReason, ...] = (),
        now: datetime | None = None,
    ) -> HourmeterHistoryEntry:
        """Append a history entry and advance ``hourmeter`` if the reading is higher."""
        BusinessRuleValidators.require_non_negative("hourmeter_reading", reading)
        now = now or utcnow()
        entry = HourmeterHistoryEntry(
            reading=reading,
            previous_reading=self.hourmeter,
            job_id=job_id,
            flag_reasons=tuple(flag_reasons),
            source=source,
            recorded_by_id=actor.id,
            recorded_at=now,
        )
        self.history = [*self.history, entry]
        if self.hourmeter is None or reading > self.hourmeter:
            self.hourmeter = reading
        self.mark_updated(now)
        return entry

    def invalidate_job_readings(self, job_id: UUID, now: datetime | None = None) -> int:
        """Mark every history entry of a deleted job as invalidated."""
        count = 0
        entries = []
        for entry in self.history:
            if entry.job_id == job_id and not entry.invalidated:
                entry = entry.model_copy(update={"invalidated": True})
                count += 1
            entries.append(entry)
        if count:
            self.history = entries
            self.mark_updated(now)
        return count
