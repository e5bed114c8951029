import logging
import threading
from typing import Dict, Optional

# Configure logging
logger = logging.getLogger("SimulationParameters")

ONE_ATMOSPHERE = 101.325  # kPa
T20C = 293.15  # K


class SimulationParameters:
    """
    Global simulation parameters that control vent and station behaviour.
    Vent configurations take their defaults from here.
    """

    # Default parameter values
    DEFAULTS = {
        # Regulation Parameters
        'target_pressure_change': {
            'value': ONE_ATMOSPHERE,
            'min': 1.0,
            'max': 1000.0,
            'unit': 'kPa/s',
            'description': 'Nominal pressure change a vent can produce per second',
            'category': 'regulation'
        },
        'pump_power': {
            'value': 1.0,
            'min': 0.05,
            'max': 1.0,
            'unit': '',
            'description': 'Fraction of pipe pressure a vent can deliver as supply pressure',
            'category': 'regulation'
        },
        'max_pressure': {
            'value': 4500.0,
            'min': 100.0,
            'max': 10000.0,
            'unit': 'kPa',
            'description': 'Hard pressure ceiling above which a vent stops moving gas',
            'category': 'regulation'
        },
        'external_pressure_bound': {
            'value': ONE_ATMOSPHERE,
            'min': 0.0,
            'max': 4500.0,
            'unit': 'kPa',
            'description': 'Default environment-side pressure target',
            'category': 'regulation'
        },
        'internal_pressure_bound': {
            'value': 0.0,
            'min': 0.0,
            'max': 4500.0,
            'unit': 'kPa',
            'description': 'Default pipe-side pressure floor',
            'category': 'regulation'
        },

        # Lockout Parameters
        'under_pressure_lockout_threshold': {
            'value': 80.0,
            'min': 0.0,
            'max': 1000.0,
            'unit': 'kPa',
            'description': 'Environment pressure below which a releasing vent locks out',
            'category': 'lockout'
        },
        'under_pressure_lockout_leak_rate': {
            'value': 0.0001,
            'min': 0.0,
            'max': 0.01,
            'unit': 'mol/kPa/s',
            'description': 'Leak coefficient applied while a vent is locked out',
            'category': 'lockout'
        },
        'manual_lockout_duration': {
            'value': 30.0,
            'min': 5.0,
            'max': 600.0,
            'unit': 's',
            'description': 'How long a manual lockout override lasts',
            'category': 'lockout'
        },
        'manual_lockout_do_after': {
            'value': 2.0,
            'min': 0.5,
            'max': 30.0,
            'unit': 's',
            'description': 'Time it takes to manually release a lockout',
            'category': 'lockout'
        },

        # Station Parameters
        'tick_interval': {
            'value': 0.5,
            'min': 0.05,
            'max': 5.0,
            'unit': 's',
            'description': 'Simulated seconds per engine step',
            'category': 'station'
        },
        'room_volume': {
            'value': 2500.0,
            'min': 100.0,
            'max': 100000.0,
            'unit': 'L',
            'description': 'Volume of one room',
            'category': 'station'
        },
        'room_initial_pressure': {
            'value': ONE_ATMOSPHERE,
            'min': 0.0,
            'max': 1000.0,
            'unit': 'kPa',
            'description': 'Room pressure at station start',
            'category': 'station'
        },
        'pipe_node_volume': {
            'value': 200.0,
            'min': 10.0,
            'max': 10000.0,
            'unit': 'L',
            'description': 'Nominal volume of one pipe segment',
            'category': 'station'
        },
        'pipe_initial_pressure': {
            'value': 1000.0,
            'min': 0.0,
            'max': 4500.0,
            'unit': 'kPa',
            'description': 'Distribution pipe pressure at station start',
            'category': 'station'
        },
        'gas_temperature': {
            'value': T20C,
            'min': 2.7,
            'max': 1000.0,
            'unit': 'K',
            'description': 'Initial temperature of all gas',
            'category': 'station'
        },

        # Scenario Parameters
        'breach_rate': {
            'value': 0.05,
            'min': 0.0,
            'max': 1.0,
            'unit': '1/s',
            'description': 'Fraction of room gas lost per second during a hull breach',
            'category': 'scenario'
        },
    }

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Singleton pattern for global parameters."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._params = {}
        self._reset_to_defaults()
        self._initialized = True

    def _reset_to_defaults(self):
        """Reset all parameters to default values."""
        for key, spec in self.DEFAULTS.items():
            self._params[key] = spec['value']

    def get(self, key: str) -> float:
        """Get a parameter value."""
        return self._params.get(key, self.DEFAULTS.get(key, {}).get('value', 0.0))

    def set(self, key: str, value: float) -> bool:
        """Set a parameter value with validation."""
        if key not in self.DEFAULTS:
            return False
        spec = self.DEFAULTS[key]
        # Clamp to valid range
        value = max(spec['min'], min(spec['max'], float(value)))
        self._params[key] = value
        logger.info(f"Simulation parameter '{key}' set to {value}")
        return True

    def get_all(self) -> Dict[str, Dict]:
        """Get all parameters with their current values and metadata."""
        result = {}
        for key, spec in self.DEFAULTS.items():
            result[key] = {
                'value': self._params.get(key, spec['value']),
                'default': spec['value'],
                'min': spec['min'],
                'max': spec['max'],
                'unit': spec['unit'],
                'description': spec['description'],
                'category': spec['category']
            }
        return result

    def get_by_category(self) -> Dict[str, Dict]:
        """Get parameters grouped by category."""
        result = {}
        for key, spec in self.DEFAULTS.items():
            cat = spec['category']
            if cat not in result:
                result[cat] = {}
            result[cat][key] = {
                'value': self._params.get(key, spec['value']),
                'default': spec['value'],
                'min': spec['min'],
                'max': spec['max'],
                'unit': spec['unit'],
                'description': spec['description']
            }
        return result

    def set_multiple(self, params: Dict[str, float]) -> Dict[str, bool]:
        """Set multiple parameters at once."""
        results = {}
        for key, value in params.items():
            results[key] = self.set(key, value)
        return results

    def export(self) -> Dict[str, float]:
        """Export current parameter values for saving."""
        return dict(self._params)

    def import_params(self, params: Dict[str, float]) -> int:
        """Import parameter values from saved configuration."""
        count = 0
        for key, value in params.items():
            if self.set(key, value):
                count += 1
        return count

    def reset(self, key: Optional[str] = None):
        """Reset parameter(s) to default."""
        if key is None:
            self._reset_to_defaults()
        elif key in self.DEFAULTS:
            self._params[key] = self.DEFAULTS[key]['value']


def get_simulation_parameters() -> SimulationParameters:
    """Get the global simulation parameters instance."""
    return SimulationParameters()
