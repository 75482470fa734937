"""Result of validating a proposed meter reading against equipment history."""

from uuid import UUID

from pydantic import Field

from ...shared.base import ValueObject
from .enums import HourmeterFlagReason


class HourmeterValidation(ValueObject):
    """
    Outcome of ``HourmeterValidator.validate_reading``.

    ``is_valid`` is false only for failure flags; ``NO_HISTORY`` is
    informational.
    """

    forklift_id: UUID | None = None
    reading: int = Field(ge=0)
    previous_reading: int | None = None
    flags: tuple[HourmeterFlagReason, ...] = ()

    @property
    def failure_flags(self) -> list[HourmeterFlagReason]:
        return [flag for flag in self.flags if flag.is_failure]

    @property
    def is_valid(self) -> bool:
        return not self.failure_flags

    @property
    def delta(self) -> int | None:
        if self.previous_reading is None:
            return None
        return self.reading - self.previous_reading
