import random
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from .parameters import get_simulation_parameters
from .types import AtmosAlarmType, ScenarioType

logger = logging.getLogger("ScenarioManager")


class ScenarioManager:
    """
    Manages active scenarios (breaches, supply faults, alarms) that disturb
    normal station atmospherics. Timed in simulated time.
    """
    def __init__(self, engine: Any, rng: Optional[random.Random] = None):
        self._engine = engine
        self._rng = rng or random.Random()
        self._active_scenario = ScenarioType.NORMAL
        self._scenario_start_time: Optional[datetime] = None
        self._scenario_duration = timedelta(0)
        self._breached_room: Optional[str] = None
        self._auto_change_frequency = 0  # Seconds, 0 = disabled
        self._last_auto_change: Optional[datetime] = None

    def start_scenario(self, scenario_type: ScenarioType, duration: int = 300):
        """Start a specific scenario for a duration in seconds."""
        if self._active_scenario != ScenarioType.NORMAL:
            self.stop_scenario()

        now = self._engine.simulation_time
        self._active_scenario = scenario_type
        self._scenario_start_time = now
        self._scenario_duration = timedelta(seconds=duration)
        logger.info(f"Started scenario: {scenario_type.value} for {duration} seconds")

        if scenario_type == ScenarioType.HULL_BREACH:
            rooms = self._engine.room_names
            self._breached_room = self._rng.choice(rooms) if rooms else None
            logger.info(f"Hull breach in {self._breached_room}")
        elif scenario_type == ScenarioType.ATMOS_DANGER:
            for vent in self._engine.vents:
                vent.regulator.on_alarm(AtmosAlarmType.DANGER)

    def update(self, dt: float):
        """Update scenario state and apply effects."""
        now = self._engine.simulation_time

        # Auto scenario change logic
        if self._auto_change_frequency > 0:
            if self._last_auto_change is None:
                self._last_auto_change = now
            elif (now - self._last_auto_change).total_seconds() > self._auto_change_frequency:
                self._last_auto_change = now
                # 70% chance of NORMAL, 30% chance of something else
                if self._rng.random() < 0.7:
                    if self._active_scenario != ScenarioType.NORMAL:
                        self.stop_scenario()
                else:
                    options = [s for s in ScenarioType if s != ScenarioType.NORMAL]
                    self.start_scenario(self._rng.choice(options), duration=self._auto_change_frequency)

        if self._active_scenario == ScenarioType.NORMAL:
            return

        if now - self._scenario_start_time > self._scenario_duration:
            self.stop_scenario()
            return

        if self._active_scenario == ScenarioType.HULL_BREACH and self._breached_room:
            # Gas is lost to space, not moved anywhere
            room = self._engine.atmosphere.get_containing_mixture(self._breached_room)
            if room is not None:
                rate = get_simulation_parameters().get('breach_rate')
                room.remove_ratio(min(1.0, rate * dt))

        elif self._active_scenario == ScenarioType.SUPPLY_FAILURE:
            # Distribution loop bleeds out through a ruptured segment
            self._engine.pipe_net.air.remove_ratio(min(1.0, 0.1 * dt))

    def stop_scenario(self):
        """Stop the current scenario."""
        if self._active_scenario == ScenarioType.ATMOS_DANGER:
            for vent in self._engine.vents:
                vent.regulator.on_alarm(AtmosAlarmType.NORMAL)
        self._active_scenario = ScenarioType.NORMAL
        self._breached_room = None
        logger.info("Scenario ended, returning to normal operation")

    def set_auto_change_frequency(self, seconds: int) -> None:
        self._auto_change_frequency = max(0, int(seconds))

    @property
    def auto_change_frequency(self) -> int:
        return self._auto_change_frequency

    @property
    def active_scenario(self) -> str:
        return self._active_scenario.value

    @property
    def breached_room(self) -> Optional[str]:
        return self._breached_room
