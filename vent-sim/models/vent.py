import logging
import math
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from interfaces import AtmosphereEngine, GasMixture
from profiles import VentProfile, get_profile
from .audit import AuditRecord
from .errors import InvalidPayloadError, UnreachableStateError, VentConfigurationError
from .gas import GAS_CONSTANT, PipeNode
from .lockout import LockoutTimer
from .parameters import get_simulation_parameters
from .types import AtmosAlarmType, LogImpact, VentPressureBound, VentPumpDirection, VentPumpState

logger = logging.getLogger("VentPump")

StateListener = Callable[[str, VentPumpState, bool], None]


def _param(key: str):
    """Dataclass default taken from the global simulation parameters."""
    return field(default_factory=lambda: get_simulation_parameters().get(key))


@dataclass
class VentPumpConfig:
    """Operator-settable configuration of one vent pump."""
    enabled: bool = True
    direction: VentPumpDirection = VentPumpDirection.RELEASING
    pressure_checks: VentPressureBound = VentPressureBound.EXTERNAL
    internal_pressure_bound: float = _param('internal_pressure_bound')
    external_pressure_bound: float = _param('external_pressure_bound')
    max_pressure: float = _param('max_pressure')
    target_pressure_change: float = _param('target_pressure_change')
    pump_power: float = _param('pump_power')
    under_pressure_lockout_threshold: float = _param('under_pressure_lockout_threshold')
    under_pressure_lockout_leak_rate: float = _param('under_pressure_lockout_leak_rate')
    pressure_lockout_override: bool = False

    BOOL_FIELDS = ('enabled', 'pressure_lockout_override')
    FLOAT_FIELDS = (
        'internal_pressure_bound', 'external_pressure_bound', 'max_pressure',
        'target_pressure_change', 'pump_power',
        'under_pressure_lockout_threshold', 'under_pressure_lockout_leak_rate',
    )

    def validate(self) -> None:
        """Raise VentConfigurationError if any value is out of range."""
        if not isinstance(self.direction, VentPumpDirection):
            raise VentConfigurationError(f"direction must be a VentPumpDirection, got {self.direction!r}")
        if not isinstance(self.pressure_checks, VentPressureBound):
            raise VentConfigurationError(f"pressure_checks must be a VentPressureBound, got {self.pressure_checks!r}")
        for name in self.FLOAT_FIELDS:
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise VentConfigurationError(f"{name} must be a finite non-negative number, got {value!r}")
        if not 0.0 < self.pump_power <= 1.0:
            raise VentConfigurationError(f"pump_power must be in (0, 1], got {self.pump_power}")

    def copy(self) -> 'VentPumpConfig':
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the device network and the web API."""
        return {
            'enabled': self.enabled,
            'direction': self.direction.name,
            'pressure_checks': [b.name for b in (VentPressureBound.INTERNAL, VentPressureBound.EXTERNAL)
                                if self.pressure_checks & b],
            'internal_pressure_bound': self.internal_pressure_bound,
            'external_pressure_bound': self.external_pressure_bound,
            'max_pressure': self.max_pressure,
            'target_pressure_change': self.target_pressure_change,
            'pump_power': self.pump_power,
            'under_pressure_lockout_threshold': self.under_pressure_lockout_threshold,
            'under_pressure_lockout_leak_rate': self.under_pressure_lockout_leak_rate,
            'pressure_lockout_override': self.pressure_lockout_override,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional['VentPumpConfig'] = None) -> 'VentPumpConfig':
        """
        Build a config from a payload. Missing fields keep the value from
        `base`; a malformed field raises InvalidPayloadError.
        """
        if not isinstance(data, dict):
            raise InvalidPayloadError('payload', data, "expected an object")
        config = base.copy() if base is not None else cls()

        for name in cls.BOOL_FIELDS:
            if name in data:
                if not isinstance(data[name], bool):
                    raise InvalidPayloadError(name, data[name], "expected a boolean")
                setattr(config, name, data[name])

        for name in cls.FLOAT_FIELDS:
            if name in data:
                value = data[name]
                if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                    raise InvalidPayloadError(name, value, "expected a number")
                setattr(config, name, float(value))

        if 'direction' in data:
            config.direction = _parse_direction(data['direction'])
        if 'pressure_checks' in data:
            config.pressure_checks = _parse_bounds(data['pressure_checks'])

        try:
            config.validate()
        except VentConfigurationError as e:
            raise InvalidPayloadError('config', data, str(e)) from e
        return config


def _parse_direction(value: Any) -> VentPumpDirection:
    if isinstance(value, VentPumpDirection):
        return value
    if isinstance(value, str):
        for direction in VentPumpDirection:
            if value.upper() == direction.name or value == direction.value:
                return direction
    raise InvalidPayloadError('direction', value, "unknown direction")


def _parse_bounds(value: Any) -> VentPressureBound:
    if isinstance(value, VentPressureBound):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value <= VentPressureBound.BOTH.value:
            return VentPressureBound(value)
        raise InvalidPayloadError('pressure_checks', value, "bitmask out of range")
    if isinstance(value, str):
        value = [value]
    if isinstance(value, (list, tuple)):
        bounds = VentPressureBound.NONE
        for name in value:
            if not isinstance(name, str) or name.upper() not in VentPressureBound.__members__:
                raise InvalidPayloadError('pressure_checks', value, "unknown bound")
            bounds |= VentPressureBound[name.upper()]
        return bounds
    raise InvalidPayloadError('pressure_checks', value, "expected a list of bounds")


@dataclass
class LockoutState:
    """Snapshot of a vent's derived lockout state."""
    under_pressure_lockout: bool
    manual_override_active: bool
    manual_override_expires_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'under_pressure_lockout': self.under_pressure_lockout,
            'manual_override_active': self.manual_override_active,
            'manual_override_expires_at': (self.manual_override_expires_at.isoformat()
                                           if self.manual_override_expires_at else None),
        }


@dataclass
class TransferOutcome:
    """
    Result of one regulation tick. A positive `moles` is an instruction to
    move that much gas from `source` into `target`.
    """
    moles: float = 0.0
    direction: Optional[VentPumpDirection] = None
    reason: str = ""
    leaking: bool = False
    source: Optional[GasMixture] = field(default=None, repr=False)
    target: Optional[GasMixture] = field(default=None, repr=False)

    @classmethod
    def none(cls, reason: str) -> 'TransferOutcome':
        return cls(reason=reason)

    @property
    def transferred(self) -> bool:
        return self.source is not None and self.moles > 0

    def apply(self, atmosphere: AtmosphereEngine) -> None:
        """Remove the gas from the source and merge it into the target."""
        if self.source is None or self.target is None:
            return
        atmosphere.merge(self.target, self.source.remove(self.moles))


class VentPumpRegulator:
    """
    Bidirectional vent pump between a pipe node and the environment.

    Each tick moves gas from the pipe into the environment (Releasing) or
    back (Siphoning), limited by the configured pressure bounds, the hard
    `max_pressure` ceiling and the under-pressure lockout.
    """

    def __init__(self, name: str,
                 config: Optional[VentPumpConfig] = None,
                 profile: Optional[VentProfile] = None,
                 atmosphere: Optional[AtmosphereEngine] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.name = name
        self.profile = profile or get_profile(None)
        self._config = config or VentPumpConfig()
        self._config.validate()
        self._atmosphere = atmosphere
        self._clock = clock or datetime.now

        self.powered = True
        self.welded = False
        self.anchored = True
        self.under_pressure_lockout = False

        duration = self.profile.manual_lockout_duration
        if duration is None:
            duration = get_simulation_parameters().get('manual_lockout_duration')
        self.lockout_timer = LockoutTimer(timedelta(seconds=duration))

        self._visual_state: Optional[VentPumpState] = None
        self._ambience = False
        self._state_listeners: List[StateListener] = []
        self.update_state()

    @classmethod
    def from_profile(cls, name: str, profile: VentProfile,
                     atmosphere: Optional[AtmosphereEngine] = None,
                     clock: Optional[Callable[[], datetime]] = None) -> 'VentPumpRegulator':
        """Create a regulator whose config starts from a profile's overrides."""
        config = VentPumpConfig.from_dict(profile.config) if profile.config else VentPumpConfig()
        return cls(name, config=config, profile=profile, atmosphere=atmosphere, clock=clock)

    @property
    def config(self) -> VentPumpConfig:
        return self._config

    @property
    def visual_state(self) -> Optional[VentPumpState]:
        return self._visual_state

    @property
    def ambience(self) -> bool:
        return self._ambience

    @property
    def node_name(self) -> str:
        """Name of the pipe node the current direction draws on."""
        direction = self._config.direction
        if direction == VentPumpDirection.RELEASING:
            return self.profile.inlet
        if direction == VentPumpDirection.SIPHONING:
            return self.profile.outlet
        raise UnreachableStateError(f"{self.name}: unknown pump direction {direction!r}")

    @property
    def effective_lockout(self) -> bool:
        """True when the lockout is engaged and nothing overrides it."""
        return (self.under_pressure_lockout
                and not self._config.pressure_lockout_override
                and not self.lockout_timer.active)

    @property
    def lockout_state(self) -> LockoutState:
        return LockoutState(
            under_pressure_lockout=self.under_pressure_lockout,
            manual_override_active=self.lockout_timer.active,
            manual_override_expires_at=self.lockout_timer.expires_at,
        )

    def add_state_listener(self, listener: StateListener) -> None:
        """Register a callback for presentation state changes."""
        self._state_listeners.append(listener)

    # --- Regulation ---

    def tick(self, dt: float, pipe: Optional[PipeNode], environment: Optional[GasMixture],
             now: Optional[datetime] = None) -> TransferOutcome:
        """
        Run one regulation step.

        Args:
            dt: Elapsed seconds since the last tick
            pipe: The pipe node selected by `node_name`, or None if absent
            environment: Ambient mixture, or None if the location is sealed
            now: Current time for the override timer (defaults to the clock)

        Returns:
            The transfer performed, or a no-op outcome with its reason
        """
        if self.welded:
            return TransferOutcome.none("welded")
        if not self.powered:
            return TransferOutcome.none("unpowered")

        node_name = self.node_name
        if not self._config.enabled:
            return TransferOutcome.none("disabled")
        if pipe is None:
            return TransferOutcome.none(f"no pipe node '{node_name}'")
        if environment is None:
            return TransferOutcome.none("environment sealed")

        now = now or self._clock()
        self.lockout_timer.check_expiry(now)

        pressure_delta = dt * self._config.target_pressure_change

        lockout = (environment.pressure < self._config.under_pressure_lockout_threshold
                   and not self.lockout_timer.active)
        if self.under_pressure_lockout != lockout:
            self.under_pressure_lockout = lockout
            logger.info(f"{self.name}: under-pressure lockout {'engaged' if lockout else 'cleared'} "
                        f"(environment {environment.pressure:.2f} kPa)")
            self.update_state()

        if self._config.direction == VentPumpDirection.RELEASING:
            outcome = self._release(dt, pipe, environment, pressure_delta)
        else:
            outcome = self._siphon(pipe, environment, pressure_delta)

        if self._atmosphere is not None and outcome.transferred:
            outcome.apply(self._atmosphere)
        return outcome

    def _release(self, dt: float, pipe: PipeNode, environment: GasMixture,
                 pressure_delta: float) -> TransferOutcome:
        cfg = self._config
        air = pipe.air
        if air.pressure <= 0:
            return TransferOutcome.none("pipe empty")
        if environment.pressure > cfg.max_pressure:
            return TransferOutcome.none("environment above max pressure")

        if cfg.pressure_checks & VentPressureBound.EXTERNAL:
            # Supply pressure is proportional to pipe pressure, up to the bound,
            # so a starved pipe cannot push the room up to the target.
            supply_pressure = min(air.pressure * cfg.pump_power, cfg.external_pressure_bound)
            pressure_delta = min(pressure_delta, supply_pressure - environment.pressure)

        if pressure_delta <= 0:
            return TransferOutcome.none("external bound reached")

        # Pipe temperature only; the environment temperature is ignored here.
        transfer_moles = pressure_delta * environment.volume / (air.temperature * GAS_CONSTANT)

        leaking = False
        if self.effective_lockout:
            transfer_moles = dt * (air.pressure - environment.pressure) * cfg.under_pressure_lockout_leak_rate
            leaking = True
            if transfer_moles < 0:
                return TransferOutcome.none("lockout leak reversed")

        if cfg.pressure_checks & VentPressureBound.INTERNAL:
            internal_delta = air.pressure - cfg.internal_pressure_bound
            if internal_delta <= 0:
                return TransferOutcome.none("internal bound reached")
            max_transfer = internal_delta * air.volume / (air.temperature * GAS_CONSTANT)
            transfer_moles = min(transfer_moles, max_transfer)

        return TransferOutcome(transfer_moles, VentPumpDirection.RELEASING, "released",
                               leaking, source=air, target=environment)

    def _siphon(self, pipe: PipeNode, environment: GasMixture,
                pressure_delta: float) -> TransferOutcome:
        cfg = self._config
        air = pipe.air
        if environment.pressure <= 0:
            return TransferOutcome.none("environment empty")
        if air.pressure > cfg.max_pressure:
            return TransferOutcome.none("pipe above max pressure")

        if cfg.pressure_checks & VentPressureBound.INTERNAL:
            pressure_delta = min(pressure_delta, cfg.internal_pressure_bound - air.pressure)

        if pressure_delta <= 0:
            return TransferOutcome.none("internal bound reached")

        # Environment temperature only; the pipe temperature is ignored here.
        transfer_moles = pressure_delta * air.volume / (environment.temperature * GAS_CONSTANT)

        if cfg.pressure_checks & VentPressureBound.EXTERNAL:
            external_delta = environment.pressure - cfg.external_pressure_bound
            if external_delta <= 0:
                return TransferOutcome.none("external bound reached")
            max_transfer = external_delta * environment.volume / (environment.temperature * GAS_CONSTANT)
            transfer_moles = min(transfer_moles, max_transfer)

        return TransferOutcome(transfer_moles, VentPumpDirection.SIPHONING, "siphoned",
                               source=environment, target=air)

    # --- Configuration ---

    def apply_remote_config(self, new_config: VentPumpConfig) -> List[AuditRecord]:
        """
        Replace the config with one received from the device network.

        Returns:
            One audit record per changed field (empty if nothing changed)
        """
        new_config.validate()
        previous = self._config
        records = []
        for f in fields(VentPumpConfig):
            old = getattr(previous, f.name)
            new = getattr(new_config, f.name)
            if old != new:
                records.append(AuditRecord(
                    device=self.name,
                    field=f.name,
                    old=old,
                    new=new,
                    message=self._describe_change(f.name, old, new),
                    impact=LogImpact.MEDIUM,
                ))

        self._config = new_config.copy()
        self.update_state()
        if records:
            logger.info(f"{self.name}: remote config applied ({len(records)} changes)")
        return records

    def _describe_change(self, name: str, old: Any, new: Any) -> str:
        if name == 'enabled':
            return f"{self.name} {'enabled' if new else 'disabled'}"
        if name == 'direction':
            return f"{self.name} direction changed to {new.value}"
        if name == 'pressure_checks':
            return f"{self.name} pressure check changed to {new.name or 'NONE'}"
        if name in ('external_pressure_bound', 'internal_pressure_bound'):
            label = name.split('_')[0]
            return f"{self.name} {label} pressure bound changed from {old} kPa to {new} kPa"
        if name == 'pressure_lockout_override':
            return f"{self.name} pressure lockout override {'enabled' if new else 'disabled'}"
        return f"{self.name} {name.replace('_', ' ')} changed from {old} to {new}"

    def apply_signal(self, port: str) -> bool:
        """
        Switch to a canned mode from a linked signal port.

        Returns:
            True if the port selected a mode
        """
        profile = self.profile
        if not profile.can_link:
            return False

        if port == profile.pressurize_port:
            direction, bound = VentPumpDirection.RELEASING, profile.pressurize_pressure
        elif port == profile.depressurize_port:
            direction, bound = VentPumpDirection.SIPHONING, profile.depressurize_pressure
        else:
            logger.debug(f"{self.name}: ignoring signal on unknown port '{port}'")
            return False

        self._config = replace(self._config, direction=direction, external_pressure_bound=bound,
                               pressure_checks=VentPressureBound.EXTERNAL)
        logger.info(f"{self.name}: {port} signal, now {direction.value} to {bound} kPa")
        self.update_state()
        return True

    # --- Device events ---

    def on_alarm(self, alarm_type: AtmosAlarmType) -> None:
        """Danger alarms shut the vent off; a normal alarm turns it back on."""
        if alarm_type == AtmosAlarmType.DANGER:
            self._config = replace(self._config, enabled=False)
        elif alarm_type == AtmosAlarmType.NORMAL:
            self._config = replace(self._config, enabled=True)
        self.update_state()

    def set_powered(self, powered: bool) -> None:
        self.powered = powered
        self.update_state()

    def set_welded(self, welded: bool) -> None:
        self.welded = welded
        self.update_state()

    def set_anchored(self, anchored: bool) -> None:
        self.anchored = anchored
        if not anchored:
            self.lockout_timer.cancel_unlock("moved")
        self.update_state()

    # --- Manual override ---

    def request_unlock(self, now: Optional[datetime] = None) -> bool:
        """Start a manual unlock. Only allowed while locked out and anchored."""
        return self.lockout_timer.start_unlock(now or self._clock(),
                                               in_lockout=self.under_pressure_lockout,
                                               anchored=self.anchored)

    def finish_unlock(self, now: Optional[datetime] = None, cancelled: bool = False,
                      handled: bool = False, source: str = "manual") -> bool:
        """Complete (or abandon) a pending manual unlock."""
        granted = self.lockout_timer.finish_unlock(now or self._clock(), cancelled=cancelled,
                                                   handled=handled, source=source)
        if granted:
            logger.info(f"{self.name}: lockout released by {source}")
            self.update_state()
        return granted

    def cancel_unlock(self, reason: str = "interrupted") -> bool:
        return self.lockout_timer.cancel_unlock(reason)

    # --- Presentation ---

    def update_state(self) -> None:
        """Recompute the visual state and ambience, notifying listeners on change."""
        ambience = True
        if self.welded:
            ambience = False
            state = VentPumpState.WELDED
        elif not self.powered or not self._config.enabled:
            ambience = False
            state = VentPumpState.OFF
        elif self._config.direction == VentPumpDirection.RELEASING:
            state = VentPumpState.LOCKOUT if self.effective_lockout else VentPumpState.OUT
        elif self._config.direction == VentPumpDirection.SIPHONING:
            state = VentPumpState.IN
        else:
            raise UnreachableStateError(f"{self.name}: unknown pump direction {self._config.direction!r}")

        if state == self._visual_state and ambience == self._ambience:
            return
        self._visual_state = state
        self._ambience = ambience
        for listener in list(self._state_listeners):
            try:
                listener(self.name, state, ambience)
            except Exception:
                logger.exception(f"{self.name}: state listener failed")

    def examine(self, in_details_range: bool = True) -> List[str]:
        """Describe the vent to an onlooker."""
        lines = [f"{self.name} is {self._visual_state.value.lower()}."]
        if (in_details_range
                and self._config.direction == VentPumpDirection.RELEASING
                and self.effective_lockout):
            lines.append("The under-pressure lockout is engaged; the vent is only leaking.")
        return lines

    def analyze(self, pipe: Optional[PipeNode]) -> Optional[Tuple[str, Any]]:
        """
        Scan the active pipe node. The mixture is scaled down to the node's
        own volume so analyzers see this segment, not the whole network.
        """
        if pipe is None or pipe.air.volume == 0:
            return None
        local = pipe.air.clone()
        local.multiply(pipe.volume / pipe.air.volume)
        local.volume = pipe.volume
        return (self.node_name, local)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'profile': self.profile.name,
            'config': self._config.to_dict(),
            'lockout': self.lockout_state.to_dict(),
            'effective_lockout': self.effective_lockout,
            'unlock': self.lockout_timer.to_dict(),
            'visual_state': self._visual_state.value if self._visual_state else None,
            'ambience': self._ambience,
            'powered': self.powered,
            'welded': self.welded,
            'anchored': self.anchored,
        }
