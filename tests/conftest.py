"""
Pytest configuration and shared fixtures for the vent simulator test suite.
"""
import pytest

from models import (
    TileAtmosphere, VentPumpConfig, VentPumpRegulator,
    VentPressureBound, VentPumpDirection, get_simulation_parameters
)
from profiles import VentProfile
from helpers import FakeClock


@pytest.fixture(autouse=True)
def reset_parameters():
    """Every test starts from the default simulation parameters."""
    get_simulation_parameters().reset()
    yield
    get_simulation_parameters().reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def atmosphere():
    return TileAtmosphere()


@pytest.fixture
def plain_profile():
    """Unlinked profile with a 30 s manual override."""
    return VentProfile(name="Test", manual_lockout_duration=30.0, manual_lockout_do_after=2.0)


@pytest.fixture
def linked_profile():
    return VentProfile(name="TestLinked", can_link=True, manual_lockout_duration=30.0,
                       pressurize_pressure=101.325, depressurize_pressure=0.0)


@pytest.fixture
def make_config():
    """Config factory with small, easy to follow numbers."""
    def _make(**overrides):
        values = dict(
            direction=VentPumpDirection.RELEASING,
            pressure_checks=VentPressureBound.NONE,
            target_pressure_change=10.0,
            max_pressure=4500.0,
            pump_power=1.0,
            under_pressure_lockout_threshold=25.0,
            under_pressure_lockout_leak_rate=0.0001,
        )
        values.update(overrides)
        return VentPumpConfig(**values)
    return _make


@pytest.fixture
def make_regulator(atmosphere, clock, plain_profile, make_config):
    def _make(profile=None, **config_overrides):
        return VentPumpRegulator("Vent_T", config=make_config(**config_overrides),
                                 profile=profile or plain_profile,
                                 atmosphere=atmosphere, clock=clock)
    return _make
