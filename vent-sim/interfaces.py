"""
Abstract interfaces for the vent simulator.
The regulator depends only on these abstractions; the gas engine, the
audit log and the presentation layer are injected collaborators.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Protocol
from dataclasses import dataclass


class GasMixture(Protocol):
    """Opaque quantity of gas owned by the atmosphere engine."""

    volume: float
    temperature: float

    @property
    def pressure(self) -> float:
        ...

    def remove(self, moles: float) -> "GasMixture":
        ...


class AtmosphereEngine(ABC):
    """Resolves ambient mixtures and merges mixtures together."""

    @abstractmethod
    def get_containing_mixture(self, location: Any) -> Optional[GasMixture]:
        """Return the mixture at a location, or None if it is sealed off."""
        pass

    @abstractmethod
    def merge(self, target: GasMixture, source: GasMixture) -> None:
        """Merge source into target."""
        pass


class PhysicsEngine(ABC):
    """Interface for simulation engines."""

    @abstractmethod
    def start(self) -> None:
        """Start the simulation loop."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the simulation loop."""
        pass


@dataclass
class StationSizeConfig:
    """
    Size of the simulated station.
    New sizes can be added by creating new instances.
    """
    name: str
    num_rooms: int
    vents_per_room: int

    @classmethod
    def small(cls) -> 'StationSizeConfig':
        return cls("Small", 2, 1)

    @classmethod
    def medium(cls) -> 'StationSizeConfig':
        return cls("Medium", 6, 1)

    @classmethod
    def large(cls) -> 'StationSizeConfig':
        return cls("Large", 12, 2)

    @classmethod
    def from_string(cls, size: str) -> 'StationSizeConfig':
        """Factory method to create config from string."""
        configs = {
            "Small": cls.small,
            "Medium": cls.medium,
            "Large": cls.large,
        }
        factory = configs.get(size, cls.small)
        return factory()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'num_rooms': self.num_rooms,
            'vents_per_room': self.vents_per_room,
        }
