"""Sub-records embedded in a job: parts used, charges, notes and signatures."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import Field

from ...shared.base import ValueObject, utcnow


class PartUsage(ValueObject):
    """A part consumed on a job, priced at the moment it was added."""

    id: UUID = Field(default_factory=uuid4)
    part_id: str
    part_name: str
    quantity: int = Field(ge=0)
    unit_price_at_time: Decimal = Field(ge=0)
    added_by_id: str | None = None
    added_at: datetime = Field(default_factory=utcnow)
    request_id: UUID | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price_at_time * self.quantity


class ExtraCharge(ValueObject):
    id: UUID = Field(default_factory=uuid4)
    name: str
    description: str = ""
    amount: Decimal = Field(ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class JobNote(ValueObject):
    """One entry of the append-only job log."""

    text: str
    author_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    kind: str = "note"


class Signature(ValueObject):
    signer_name: str
    signed_at: datetime = Field(default_factory=utcnow)
    signature_url: str | None = None
    signer_id: str | None = None
