from enum import Enum, Flag


class VentPumpDirection(Enum):
    RELEASING = "Releasing"
    SIPHONING = "Siphoning"


class VentPressureBound(Flag):
    NONE = 0
    INTERNAL = 1
    EXTERNAL = 2
    BOTH = INTERNAL | EXTERNAL


class VentPumpState(Enum):
    WELDED = "Welded"
    OFF = "Off"
    LOCKOUT = "Lockout"
    OUT = "Out"
    IN = "In"


class AtmosAlarmType(Enum):
    NORMAL = "Normal"
    WARNING = "Warning"
    DANGER = "Danger"


class UnlockState(Enum):
    IDLE = "Idle"
    UNLOCKING = "Unlocking"
    OVERRIDDEN = "Overridden"


class LogImpact(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ScenarioType(Enum):
    NORMAL = "Normal"
    HULL_BREACH = "Hull Breach"
    SUPPLY_FAILURE = "Supply Failure"
    ATMOS_DANGER = "Atmos Danger"
