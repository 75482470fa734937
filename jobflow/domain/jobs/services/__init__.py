"""Domain services for the job lifecycle."""

from .hourmeter_validator import HourmeterRules, HourmeterValidator
from .sla_tracker import (
    OverdueWork,
    ResponseWindowState,
    SLATracker,
    SlotInSLAState,
    UrgencyBands,
)

__all__ = [
    "HourmeterRules",
    "HourmeterValidator",
    "OverdueWork",
    "ResponseWindowState",
    "SLATracker",
    "SlotInSLAState",
    "UrgencyBands",
]
