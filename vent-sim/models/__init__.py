from .parameters import SimulationParameters, get_simulation_parameters, ONE_ATMOSPHERE, T20C
from .types import (
    VentPumpDirection, VentPressureBound, VentPumpState, AtmosAlarmType,
    UnlockState, LogImpact, ScenarioType
)
from .errors import VentError, UnreachableStateError, VentConfigurationError, InvalidPayloadError
from .gas import GAS_CONSTANT, IdealGasMixture, PipeNode, PipeNet, TileAtmosphere, moles_for
from .lockout import LockoutTimer, ManualOverride, UnlockInteraction
from .audit import AuditRecord, AuditSink, AuditLog, emit_best_effort
from .vent import VentPumpConfig, VentPumpRegulator, LockoutState, TransferOutcome
from .network import VentPumpNetworkHandler, sync_request, set_state_packet
from .scenarios import ScenarioManager
from .engine import StationEngine, VentPumpDevice

__all__ = [
    'SimulationParameters', 'get_simulation_parameters', 'ONE_ATMOSPHERE', 'T20C',
    'VentPumpDirection', 'VentPressureBound', 'VentPumpState', 'AtmosAlarmType',
    'UnlockState', 'LogImpact', 'ScenarioType',
    'VentError', 'UnreachableStateError', 'VentConfigurationError', 'InvalidPayloadError',
    'GAS_CONSTANT', 'IdealGasMixture', 'PipeNode', 'PipeNet', 'TileAtmosphere', 'moles_for',
    'LockoutTimer', 'ManualOverride', 'UnlockInteraction',
    'AuditRecord', 'AuditSink', 'AuditLog', 'emit_best_effort',
    'VentPumpConfig', 'VentPumpRegulator', 'LockoutState', 'TransferOutcome',
    'VentPumpNetworkHandler', 'sync_request', 'set_state_packet',
    'ScenarioManager',
    'StationEngine', 'VentPumpDevice'
]
