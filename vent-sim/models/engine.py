import os
import time
import queue
import random
import threading
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from interfaces import PhysicsEngine, StationSizeConfig
from profiles import get_profile
from .audit import AuditLog
from .errors import InvalidPayloadError, VentError
from .gas import IdealGasMixture, PipeNet, PipeNode, TileAtmosphere
from .lockout import UnlockInteraction
from .network import VentPumpNetworkHandler, sync_request
from .parameters import get_simulation_parameters
from .scenarios import ScenarioManager
from .types import AtmosAlarmType, ScenarioType
from .vent import TransferOutcome, VentPumpRegulator

logger = logging.getLogger("StationEngine")

Reply = Callable[[Any], None]


def _flag(name: str, value: Any) -> bool:
    """Device flags must be real booleans; "false" is not False."""
    if not isinstance(value, bool):
        raise InvalidPayloadError(name, value, "expected a boolean")
    return value


@dataclass
class VentPumpDevice:
    """A vent installed in a room and attached to the distribution loop."""
    id: int
    room: str
    regulator: VentPumpRegulator
    nodes: Dict[str, PipeNode]

    @property
    def name(self) -> str:
        return self.regulator.name

    def active_node(self) -> Optional[PipeNode]:
        """The node the regulator's current direction draws on."""
        return self.nodes.get(self.regulator.node_name)


@dataclass
class QueuedCommand:
    """A mutation waiting to be applied on the engine thread."""
    vent_id: int
    kind: str
    payload: Any = None
    reply: Optional[Reply] = None


class StationEngine(PhysicsEngine):
    """
    Station simulation engine. Owns the rooms, the distribution loop and
    every vent, and ticks them one at a time. All vent mutations coming from
    other threads are queued and applied at the start of the next step.
    """

    COMMANDS = ('packet', 'signal', 'unlock', 'cancel_unlock', 'power', 'weld', 'anchor', 'alarm')

    def __init__(self,
                 config: StationSizeConfig = None,
                 profile_name: str = None,
                 seed: str = None,
                 start_time: datetime = None):
        self._config = config or StationSizeConfig.from_string(
            os.environ.get("STATION_SIZE", "Small")
        )
        self._simulation_speed: float = float(os.environ.get("SIMULATION_SPEED", "1.0"))
        self._seed: str = seed if seed is not None else os.environ.get("SEED", "")
        self._profile_name = profile_name or os.environ.get("VENT_PROFILE") or None
        self._rng = random.Random(self._seed if self._seed else None)

        self._simulation_time = start_time or datetime(2024, 1, 1, 12, 0, 0)
        self._atmosphere = TileAtmosphere()
        self._pipe_net = PipeNet(get_simulation_parameters().get('gas_temperature'))
        self._audit_log = AuditLog()
        self._network = VentPumpNetworkHandler(self._audit_log)
        self._commands: "queue.Queue[QueuedCommand]" = queue.Queue()
        self._interactions: Dict[int, UnlockInteraction] = {}
        self._vents: List[VentPumpDevice] = []
        self._rooms: List[str] = []

        self._build_station()

        self._running = False
        self._thread = None
        self._lock = threading.Lock()

        # Scenario Manager
        self._scenario_manager = ScenarioManager(self, self._rng)

    def _build_station(self) -> None:
        """Create rooms, pipe nodes and vents for the configured size."""
        params = get_simulation_parameters()
        temperature = params.get('gas_temperature')

        vent_id = 1
        for r in range(1, self._config.num_rooms + 1):
            room = f"Room_{r}"
            self._rooms.append(room)
            self._atmosphere.add_tile(room, IdealGasMixture.at_pressure(
                params.get('room_initial_pressure'), params.get('room_volume'), temperature
            ))

            for _ in range(self._config.vents_per_room):
                profile = get_profile(self._profile_name)
                name = f"Vent_{vent_id}"
                nodes = {profile.inlet: self._pipe_net.add_node(f"{name}.{profile.inlet}",
                                                                params.get('pipe_node_volume'))}
                if profile.outlet not in nodes:
                    nodes[profile.outlet] = self._pipe_net.add_node(f"{name}.{profile.outlet}",
                                                                    params.get('pipe_node_volume'))

                regulator = VentPumpRegulator.from_profile(
                    name, profile, atmosphere=self._atmosphere, clock=lambda: self._simulation_time
                )
                regulator.add_state_listener(self._on_vent_state)
                self._vents.append(VentPumpDevice(vent_id, room, regulator, nodes))
                vent_id += 1

        self._pipe_net.fill(params.get('pipe_initial_pressure'))
        logger.info(f"Station built: {len(self._rooms)} rooms, {len(self._vents)} vents, "
                    f"loop at {self._pipe_net.air.pressure:.1f} kPa")

    def _on_vent_state(self, name: str, state, ambience: bool) -> None:
        logger.debug(f"{name} visual state {state.value} (ambience {'on' if ambience else 'off'})")

    # --- Accessors ---

    @property
    def vents(self) -> List[VentPumpDevice]:
        return list(self._vents)

    def get_vent(self, vent_id: int) -> Optional[VentPumpDevice]:
        for vent in self._vents:
            if vent.id == vent_id:
                return vent
        return None

    @property
    def room_names(self) -> List[str]:
        return list(self._rooms)

    @property
    def atmosphere(self) -> TileAtmosphere:
        return self._atmosphere

    @property
    def pipe_net(self) -> PipeNet:
        return self._pipe_net

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    @property
    def simulation_time(self) -> datetime:
        return self._simulation_time

    @property
    def simulation_speed(self) -> float:
        return self._simulation_speed

    @property
    def scenario_manager(self) -> ScenarioManager:
        return self._scenario_manager

    @property
    def config(self) -> StationSizeConfig:
        return self._config

    # --- Commands ---

    def queue_command(self, vent_id: int, kind: str, payload: Any = None,
                      reply: Optional[Reply] = None) -> None:
        """Queue a vent mutation for the next engine step. Safe from any thread."""
        if kind not in self.COMMANDS:
            raise ValueError(f"Unknown command kind: {kind}")
        self._commands.put(QueuedCommand(vent_id, kind, payload, reply))

    def send_packet(self, vent_id: int, packet: Dict[str, Any], reply: Optional[Reply] = None) -> None:
        self.queue_command(vent_id, 'packet', packet, reply)

    def _drain_commands(self) -> int:
        count = 0
        while True:
            try:
                cmd = self._commands.get_nowait()
            except queue.Empty:
                return count
            result = None
            try:
                result = self._apply_command(cmd)
            except (VentError, ValueError) as e:
                logger.warning(f"Command {cmd.kind} for vent {cmd.vent_id} rejected: {e}")
            if cmd.reply is not None:
                cmd.reply(result)
            count += 1

    def _apply_command(self, cmd: QueuedCommand) -> Any:
        vent = self.get_vent(cmd.vent_id)
        if vent is None:
            logger.warning(f"Command {cmd.kind} for unknown vent {cmd.vent_id}")
            return None
        reg = vent.regulator
        now = self._simulation_time

        if cmd.kind == 'packet':
            return self._network.handle_packet(reg, cmd.payload)
        if cmd.kind == 'signal':
            return reg.apply_signal(cmd.payload)
        if cmd.kind == 'unlock':
            return self._start_unlock(vent, cmd.payload or "manual")
        if cmd.kind == 'cancel_unlock':
            interaction = self._interactions.get(vent.id)
            if interaction is None:
                return False
            interaction.interrupt(cmd.payload or "interrupted")
            return True
        if cmd.kind == 'power':
            reg.set_powered(_flag('powered', cmd.payload))
            return reg.powered
        if cmd.kind == 'weld':
            reg.set_welded(_flag('welded', cmd.payload))
            return reg.welded
        if cmd.kind == 'anchor':
            anchored = _flag('anchored', cmd.payload)
            if not anchored and vent.id in self._interactions:
                self._interactions[vent.id].interrupt("moved")
            reg.set_anchored(anchored)
            return reg.anchored
        if cmd.kind == 'alarm':
            reg.on_alarm(AtmosAlarmType(cmd.payload))
            return reg.config.enabled
        return None

    def _start_unlock(self, vent: VentPumpDevice, user: str) -> bool:
        if vent.id in self._interactions:
            return False
        if not vent.regulator.request_unlock(self._simulation_time):
            return False
        delay = vent.regulator.profile.manual_lockout_do_after
        if delay is None:
            delay = get_simulation_parameters().get('manual_lockout_do_after')
        self._interactions[vent.id] = UnlockInteraction(
            vent_id=vent.id, started_at=self._simulation_time,
            delay=timedelta(seconds=delay), user=user
        )
        logger.info(f"{vent.name}: {user} started releasing the lockout ({delay}s)")
        return True

    def _advance_interactions(self) -> None:
        now = self._simulation_time
        for vent_id, interaction in list(self._interactions.items()):
            if not interaction.is_due(now):
                continue
            del self._interactions[vent_id]
            vent = self.get_vent(vent_id)
            vent.regulator.finish_unlock(now, cancelled=interaction.interrupted is not None,
                                         source=interaction.user)

    def pending_unlock(self, vent_id: int) -> Optional[UnlockInteraction]:
        return self._interactions.get(vent_id)

    # --- Simulation ---

    def step(self, dt: float = None) -> Dict[int, TransferOutcome]:
        """Advance the station by one tick and return each vent's outcome."""
        with self._lock:
            if dt is None:
                dt = get_simulation_parameters().get('tick_interval')
            self._drain_commands()
            self._simulation_time += timedelta(seconds=dt)
            self._scenario_manager.update(dt)
            self._advance_interactions()

            outcomes = {}
            for vent in self._vents:
                environment = self._atmosphere.get_containing_mixture(vent.room)
                outcomes[vent.id] = vent.regulator.tick(
                    dt, vent.active_node(), environment, now=self._simulation_time
                )
            return outcomes

    def start(self) -> None:
        """Start the simulation loop."""
        self._running = True
        self._thread = threading.Thread(target=self._physics_loop, daemon=True)
        self._thread.start()
        logger.info("Station Engine Started")

    def stop(self) -> None:
        """Stop the simulation loop."""
        self._running = False
        if self._thread:
            self._thread.join()
        logger.info("Station Engine Stopped")

    def _physics_loop(self) -> None:
        while self._running:
            start_time = time.time()
            dt = get_simulation_parameters().get('tick_interval')
            self.step(dt)

            # Sleep to maintain simulation speed
            elapsed = time.time() - start_time
            time.sleep(max(0.01, dt / self._simulation_speed - elapsed))

    def trigger_scenario(self, scenario_name: str, duration: int = 300) -> str:
        """Trigger a specific scenario."""
        try:
            scenario_type = ScenarioType(scenario_name)
        except ValueError:
            return f"Unknown scenario: {scenario_name}"
        with self._lock:
            if scenario_type == ScenarioType.NORMAL:
                self._scenario_manager.stop_scenario()
            else:
                self._scenario_manager.start_scenario(scenario_type, duration)
        return f"Started scenario: {scenario_name}"

    def set_auto_scenario_frequency(self, seconds: int) -> None:
        """Pick a random scenario every `seconds` of simulated time (0 disables)."""
        with self._lock:
            self._scenario_manager.set_auto_change_frequency(seconds)
        logger.info(f"Auto-scenario frequency set to {seconds}s")

    # --- Read surface ---

    def sync(self, vent_id: int) -> Optional[Dict[str, Any]]:
        """Answer a sync request directly, for read-only callers."""
        vent = self.get_vent(vent_id)
        if vent is None:
            return None
        with self._lock:
            return self._network.handle_packet(vent.regulator, sync_request())

    def analyze(self, vent_id: int) -> Optional[Dict[str, Any]]:
        vent = self.get_vent(vent_id)
        if vent is None:
            return None
        with self._lock:
            result = vent.regulator.analyze(vent.active_node())
        if result is None:
            return None
        node_name, mixture = result
        return {'node': node_name, 'mixture': mixture.to_dict()}

    def _vent_status(self, vent: VentPumpDevice) -> Dict[str, Any]:
        environment = self._atmosphere.get_containing_mixture(vent.room)
        status = vent.regulator.to_dict()
        status.update({
            'id': vent.id,
            'room': vent.room,
            'room_pressure': round(environment.pressure, 3) if environment is not None else None,
            'room_sealed': environment is None,
            'unlock_pending': vent.id in self._interactions,
            'examine': vent.regulator.examine(),
        })
        return status

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'simulation_time': self._simulation_time.isoformat(),
                'station': self._config.to_dict(),
                'active_scenario': self._scenario_manager.active_scenario,
                'auto_scenario_frequency': self._scenario_manager.auto_change_frequency,
                'pipe_pressure': round(self._pipe_net.air.pressure, 3),
                'rooms': {name: mix.to_dict() for name, mix in self._atmosphere.tiles.items()},
                'vents': [self._vent_status(v) for v in self._vents],
            }

    def get_vent_status(self, vent_id: int) -> Optional[Dict[str, Any]]:
        vent = self.get_vent(vent_id)
        if vent is None:
            return None
        with self._lock:
            return self._vent_status(vent)

    def get_vents_status(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._vent_status(v) for v in self._vents]
