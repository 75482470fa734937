"""Forklift condition checklist captured during a job."""

from collections.abc import Mapping
from enum import Enum

from pydantic import Field, field_validator

from ...shared.base import ValueObject

CHECKLIST_VERSION = 1


class ChecklistState(str, Enum):
    OK = "ok"
    NOT_OK = "not_ok"
    UNSET = "unset"


class ChecklistItem(str, Enum):
    """Closed set of inspected components, grouped by system."""

    # Drive system
    DRIVE_FRONT_AXLE = "drive_front_axle"
    DRIVE_REAR_AXLE = "drive_rear_axle"
    DRIVE_MOTOR_ENGINE = "drive_motor_engine"
    DRIVE_CONTROLLER_TRANSMISSION = "drive_controller_transmission"
    # Hydraulic system
    HYDRAULIC_PUMP = "hydraulic_pump"
    HYDRAULIC_CONTROL_VALVE = "hydraulic_control_valve"
    HYDRAULIC_HOSE = "hydraulic_hose"
    HYDRAULIC_OIL_LEVEL = "hydraulic_oil_level"
    # Safety devices
    SAFETY_OVERHEAD_GUARD = "safety_overhead_guard"
    SAFETY_CABIN_BODY = "safety_cabin_body"
    SAFETY_BACKREST = "safety_backrest"
    SAFETY_SEAT_BELT = "safety_seat_belt"
    # Steering
    STEERING_WHEEL_VALVE = "steering_wheel_valve"
    STEERING_CYLINDER = "steering_cylinder"
    STEERING_MOTOR = "steering_motor"
    STEERING_KNUCKLE = "steering_knuckle"
    # Load handling
    LOAD_FORK = "load_fork"
    LOAD_MAST_ROLLER = "load_mast_roller"
    LOAD_CHAIN_WHEEL = "load_chain_wheel"
    LOAD_CYLINDER = "load_cylinder"
    # Lighting
    LIGHTING_BEACON_LIGHT = "lighting_beacon_light"
    LIGHTING_HORN = "lighting_horn"
    LIGHTING_BUZZER = "lighting_buzzer"
    LIGHTING_REAR_VIEW_MIRROR = "lighting_rear_view_mirror"
    # Braking
    BRAKING_BRAKE_PEDAL = "braking_brake_pedal"
    BRAKING_PARKING_BRAKE = "braking_parking_brake"
    BRAKING_FLUID_PIPE = "braking_fluid_pipe"
    BRAKING_MASTER_PUMP = "braking_master_pump"
    # Diesel / LPG / petrol
    FUEL_ENGINE_OIL_LEVEL = "fuel_engine_oil_level"
    FUEL_LINE_LEAKS = "fuel_line_leaks"
    FUEL_RADIATOR = "fuel_radiator"
    FUEL_EXHAUST_PIPING = "fuel_exhaust_piping"
    # Tyres
    TYRES_FRONT = "tyres_front"
    TYRES_REAR = "tyres_rear"
    TYRES_RIM = "tyres_rim"
    TYRES_SCREW_NUT = "tyres_screw_nut"
    # Electrical
    ELECTRICAL_IGNITION = "electrical_ignition"
    ELECTRICAL_BATTERY = "electrical_battery"
    ELECTRICAL_WIRING = "electrical_wiring"
    ELECTRICAL_INSTRUMENTS = "electrical_instruments"
    # Transmission
    TRANSMISSION_FLUID_LEVEL = "transmission_fluid_level"
    TRANSMISSION_INCHING_VALVE = "transmission_inching_valve"
    TRANSMISSION_AIR_CLEANER = "transmission_air_cleaner"
    TRANSMISSION_LPG_REGULATOR = "transmission_lpg_regulator"
    # Wheels
    WHEELS_DRIVE = "wheels_drive"
    WHEELS_LOAD = "wheels_load"
    WHEELS_SUPPORT = "wheels_support"
    WHEELS_HUB_NUT = "wheels_hub_nut"


# Items that block completion while unset. Ordered by ChecklistItem declaration.
MANDATORY_CHECKLIST_ITEMS: tuple[ChecklistItem, ...] = tuple(
    item
    for item in ChecklistItem
    if item
    in {
        ChecklistItem.SAFETY_OVERHEAD_GUARD,
        ChecklistItem.SAFETY_SEAT_BELT,
        ChecklistItem.LIGHTING_HORN,
        ChecklistItem.LIGHTING_BEACON_LIGHT,
        ChecklistItem.BRAKING_BRAKE_PEDAL,
        ChecklistItem.BRAKING_PARKING_BRAKE,
        ChecklistItem.STEERING_WHEEL_VALVE,
        ChecklistItem.STEERING_CYLINDER,
    }
)


class ConditionChecklist(ValueObject):
    """
    Versioned map of component -> state.

    Only non-unset states are stored; anything absent reads as ``UNSET``.
    Updates return a new checklist.
    """

    version: int = CHECKLIST_VERSION
    items: dict[ChecklistItem, ChecklistState] = Field(default_factory=dict)

    @field_validator("items")
    @classmethod
    def drop_unset(
        cls, v: dict[ChecklistItem, ChecklistState]
    ) -> dict[ChecklistItem, ChecklistState]:
        return {k: s for k, s in v.items() if s != ChecklistState.UNSET}

    @field_validator("version")
    @classmethod
    def known_version(cls, v: int) -> int:
        if v != CHECKLIST_VERSION:
            raise ValueError(f"Unsupported checklist version {v}")
        return v

    def state_of(self, item: ChecklistItem) -> ChecklistState:
        return self.items.get(item, ChecklistState.UNSET)

    def with_states(
        self, updates: Mapping[ChecklistItem | str, ChecklistState | str]
    ) -> "ConditionChecklist":
        merged = dict(self.items)
        for key, state in updates.items():
            merged[ChecklistItem(key)] = ChecklistState(state)
        return ConditionChecklist(version=self.version, items=merged)

    def missing_mandatory_items(self) -> list[ChecklistItem]:
        return [
            item
            for item in MANDATORY_CHECKLIST_ITEMS
            if self.state_of(item) == ChecklistState.UNSET
        ]

    @property
    def is_complete(self) -> bool:
        return not self.missing_mandatory_items()

    @property
    def checked_count(self) -> int:
        return len(self.items)

    @property
    def not_ok_items(self) -> list[ChecklistItem]:
        return [i for i in ChecklistItem if self.state_of(i) == ChecklistState.NOT_OK]
