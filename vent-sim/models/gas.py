"""
Ideal-gas reference implementations of the atmosphere collaborators.
Single species, ideal gas: P = nRT / V in kPa, litres and Kelvin.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from interfaces import AtmosphereEngine
from .parameters import T20C

logger = logging.getLogger("Atmosphere")

GAS_CONSTANT = 8.314462618  # kPa*L/(mol*K)
TCMB = 2.7  # K, floor for any mixture temperature


def moles_for(pressure: float, volume: float, temperature: float) -> float:
    """Moles needed to hold a pressure in a volume at a temperature."""
    return pressure * volume / (temperature * GAS_CONSTANT)


@dataclass
class IdealGasMixture:
    """A quantity of gas with a volume and a temperature."""
    moles: float = 0.0
    volume: float = 0.0
    temperature: float = T20C

    def __post_init__(self):
        if self.temperature <= 0:
            raise ValueError(f"temperature must be positive, got {self.temperature}")
        if self.volume < 0:
            raise ValueError(f"volume must not be negative, got {self.volume}")
        self.moles = max(0.0, self.moles)

    @classmethod
    def at_pressure(cls, pressure: float, volume: float,
                    temperature: float = T20C) -> 'IdealGasMixture':
        """Build a mixture filled to a given pressure."""
        return cls(moles_for(pressure, volume, temperature), volume, temperature)

    @property
    def pressure(self) -> float:
        if self.volume <= 0:
            return 0.0
        return self.moles * GAS_CONSTANT * self.temperature / self.volume

    def remove(self, moles: float) -> 'IdealGasMixture':
        """Take up to `moles` out of this mixture at the same temperature."""
        amount = max(0.0, min(moles, self.moles))
        self.moles -= amount
        return IdealGasMixture(amount, 0.0, self.temperature)

    def remove_ratio(self, ratio: float) -> 'IdealGasMixture':
        """Take a fraction of this mixture."""
        ratio = max(0.0, min(1.0, ratio))
        return self.remove(self.moles * ratio)

    def merge(self, other: 'IdealGasMixture') -> None:
        """Add another mixture's gas, equalising temperature by heat content."""
        total = self.moles + other.moles
        if total > 0:
            self.temperature = max(
                TCMB,
                (self.moles * self.temperature + other.moles * other.temperature) / total
            )
        self.moles = total

    def multiply(self, factor: float) -> None:
        self.moles = max(0.0, self.moles * factor)

    def clone(self) -> 'IdealGasMixture':
        return IdealGasMixture(self.moles, self.volume, self.temperature)

    def to_dict(self) -> Dict[str, float]:
        return {
            'moles': round(self.moles, 4),
            'volume': round(self.volume, 2),
            'temperature': round(self.temperature, 2),
            'pressure': round(self.pressure, 3),
        }


@dataclass
class PipeNode:
    """
    Named node of a pipe network. `air` is shared by every node of the
    network; `volume` is this node's own nominal volume.
    """
    name: str
    air: IdealGasMixture
    volume: float


class PipeNet:
    """A pipe network whose nodes share one mixture."""

    def __init__(self, temperature: float = T20C):
        self.air = IdealGasMixture(0.0, 0.0, temperature)
        self._nodes: List[PipeNode] = []

    def add_node(self, name: str, volume: float) -> PipeNode:
        """Attach a new node, growing the shared volume."""
        self.air.volume += volume
        node = PipeNode(name, self.air, volume)
        self._nodes.append(node)
        return node

    def fill(self, pressure: float) -> None:
        """Set the network to a pressure at its current temperature."""
        self.air.moles = moles_for(pressure, self.air.volume, self.air.temperature)

    @property
    def nodes(self) -> List[PipeNode]:
        return list(self._nodes)


class TileAtmosphere(AtmosphereEngine):
    """
    Atmosphere made of independent tiles keyed by location.
    A sealed tile resolves to no mixture.
    """

    def __init__(self):
        self._tiles: Dict[Any, IdealGasMixture] = {}
        self._sealed: Set[Any] = set()

    def add_tile(self, location: Any, mixture: IdealGasMixture) -> None:
        self._tiles[location] = mixture

    def seal(self, location: Any) -> None:
        self._sealed.add(location)
        logger.info(f"Tile {location} sealed")

    def unseal(self, location: Any) -> None:
        self._sealed.discard(location)
        logger.info(f"Tile {location} unsealed")

    def is_sealed(self, location: Any) -> bool:
        return location in self._sealed

    def get_containing_mixture(self, location: Any) -> Optional[IdealGasMixture]:
        if location in self._sealed:
            return None
        return self._tiles.get(location)

    def merge(self, target: IdealGasMixture, source: IdealGasMixture) -> None:
        target.merge(source)

    @property
    def tiles(self) -> Dict[Any, IdealGasMixture]:
        return dict(self._tiles)
