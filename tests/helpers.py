"""
Builders shared by the test modules.
"""
from datetime import datetime, timedelta

from models import IdealGasMixture, PipeNode

T0 = datetime(2024, 1, 1, 12, 0, 0)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def make_pipe(pressure: float, volume: float = 10.0, temperature: float = 300.0) -> PipeNode:
    return PipeNode("pipe", IdealGasMixture.at_pressure(pressure, volume, temperature), volume)


def make_env(pressure: float, volume: float = 50.0, temperature: float = 300.0) -> IdealGasMixture:
    return IdealGasMixture.at_pressure(pressure, volume, temperature)
