"""
Hourmeter Validator

Plausibility checks for meter readings. Anomalies are data, not errors: the
result lists flag reasons and the reading is stored either way.
"""

import logging
from dataclasses import dataclass

from ...shared.validation import BusinessRuleValidators
from ..entities.forklift import Forklift
from ..value_objects import HourmeterFlagReason
from ..value_objects.hourmeter import HourmeterValidation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HourmeterRules:
    """Thresholds for the jump check.

    ``jump_threshold_hours`` wins when set; otherwise the threshold is the
    forklift's average daily usage times ``jump_window_days``.
    """

    jump_threshold_hours: int | None = None
    jump_window_days: int = 30

    def threshold_for(self, forklift: Forklift) -> float:
        if self.jump_threshold_hours is not None:
            return float(self.jump_threshold_hours)
        return forklift.avg_daily_usage_hours * self.jump_window_days


class HourmeterValidator:
    """Validates proposed readings against a forklift's recorded hourmeter."""

    def __init__(self, rules: HourmeterRules | None = None) -> None:
        self._rules = rules or HourmeterRules()

    def validate_reading(self, forklift: Forklift, proposed: int) -> HourmeterValidation:
        """
        Check a proposed reading.

        Args:
            forklift: Equipment whose history is checked
            proposed: Reading entered by the technician

        Returns:
            HourmeterValidation with the flags raised

        Raises:
            ValidationError: If the reading is negative
        """
        BusinessRuleValidators.require_non_negative("hourmeter_reading", proposed)
        previous = forklift.hourmeter
        flags: list[HourmeterFlagReason] = []

        if previous is None:
            flags.append(HourmeterFlagReason.NO_HISTORY)
        elif proposed < previous:
            flags.append(HourmeterFlagReason.LOWER_THAN_PREVIOUS)
        elif proposed - previous > self._rules.threshold_for(forklift):
            flags.append(HourmeterFlagReason.EXCESSIVE_JUMP)

        result = HourmeterValidation(
            forklift_id=forklift.id,
            reading=proposed,
            previous_reading=previous,
            flags=tuple(flags),
        )
        if not result.is_valid:
            logger.info(
                f"Hourmeter reading {proposed} for forklift {forklift.id} flagged: "
                f"{[f.value for f in result.failure_flags]} (previous {previous})"
            )
        return result
