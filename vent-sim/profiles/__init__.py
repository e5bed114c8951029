"""
Vent profiles for the vent simulator.
Each profile describes a kind of vent: its pipe node names, whether it can
be linked to signal ports, the canned pressurize/depressurize presets, its
override timings and any config values that differ from the global defaults.
"""
import os
import random
import yaml
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger("Profiles")

DEFAULT_PROFILE = "GasVentPump"


@dataclass
class VentProfile:
    name: str = DEFAULT_PROFILE
    description: str = ""
    inlet: str = "pipe"
    outlet: str = "pipe"
    can_link: bool = False
    pressurize_port: str = "Pressurize"
    depressurize_port: str = "Depressurize"
    pressurize_pressure: float = 101.325
    depressurize_pressure: float = 0.0
    manual_lockout_duration: Optional[float] = None  # None = simulation default
    manual_lockout_do_after: Optional[float] = None
    config: Dict[str, Any] = field(default_factory=dict)  # VentPumpConfig overrides
    config_file: str = ""  # Path to the config file

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config_file: str = "") -> 'VentProfile':
        ports = data.get('ports', {}) or {}
        presets = data.get('presets', {}) or {}
        lockout = data.get('manual_lockout', {}) or {}
        return cls(
            name=data.get('name', DEFAULT_PROFILE),
            description=data.get('description', ''),
            inlet=data.get('inlet', 'pipe'),
            outlet=data.get('outlet', 'pipe'),
            can_link=bool(data.get('can_link', False)),
            pressurize_port=ports.get('pressurize', 'Pressurize'),
            depressurize_port=ports.get('depressurize', 'Depressurize'),
            pressurize_pressure=float(presets.get('pressurize', 101.325)),
            depressurize_pressure=float(presets.get('depressurize', 0.0)),
            manual_lockout_duration=lockout.get('duration'),
            manual_lockout_do_after=lockout.get('do_after'),
            config=data.get('config', {}) or {},
            config_file=config_file,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'name': self.name,
            'description': self.description,
            'inlet': self.inlet,
            'outlet': self.outlet,
            'can_link': self.can_link,
            'ports': {
                'pressurize': self.pressurize_port,
                'depressurize': self.depressurize_port,
            },
            'presets': {
                'pressurize': self.pressurize_pressure,
                'depressurize': self.depressurize_pressure,
            },
            'config': self.config,
        }
        lockout = {}
        if self.manual_lockout_duration is not None:
            lockout['duration'] = self.manual_lockout_duration
        if self.manual_lockout_do_after is not None:
            lockout['do_after'] = self.manual_lockout_do_after
        if lockout:
            data['manual_lockout'] = lockout
        return data


PROFILES: Dict[str, VentProfile] = {}


def _profiles_dir() -> str:
    return os.environ.get("VENT_PROFILES_DIR", os.path.dirname(__file__))


def load_profiles():
    """Load profiles from YAML files in the profiles directory."""
    PROFILES.clear()

    profiles_dir = _profiles_dir()
    if not os.path.exists(profiles_dir):
        logger.warning(f"Profiles directory not found: {profiles_dir}")
        return

    for filename in sorted(os.listdir(profiles_dir)):
        if filename.endswith('.yaml') or filename.endswith('.yml'):
            file_path = os.path.join(profiles_dir, filename)
            try:
                with open(file_path, 'r') as f:
                    data = yaml.safe_load(f) or {}
                profile = VentProfile.from_dict(data, config_file=filename)
                PROFILES[profile.name] = profile
                logger.info(f"Loaded profile: {profile.name} from {filename}")
            except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
                logger.error(f"Failed to load profile from {filename}: {e}")


# Load profiles on module import
load_profiles()


def get_profile(name: Optional[str]) -> VentProfile:
    """Get a profile by name, defaulting to the plain vent if not found."""
    if not PROFILES:
        load_profiles()

    default = PROFILES.get(DEFAULT_PROFILE)
    if not default and PROFILES:
        default = list(PROFILES.values())[0]
    if not default:
        default = VentProfile()

    if name is None:
        return default
    profile = PROFILES.get(name)
    if profile is None:
        logger.warning(f"Unknown vent profile '{name}', using {default.name}")
        return default
    return profile


def get_random_profile(rng: Optional[random.Random] = None) -> VentProfile:
    """Get a random profile."""
    if not PROFILES:
        load_profiles()
    if not PROFILES:
        return VentProfile()
    return (rng or random).choice(list(PROFILES.values()))


def save_profile(profile: VentProfile) -> bool:
    """Save profile to its YAML file."""
    if not profile.config_file:
        logger.error(f"Cannot save profile {profile.name}: No config file specified")
        return False

    file_path = os.path.join(_profiles_dir(), profile.config_file)
    try:
        with open(file_path, 'w') as f:
            yaml.dump(profile.to_dict(), f, default_flow_style=False, sort_keys=False)
        logger.info(f"Saved profile: {profile.name} to {profile.config_file}")
        PROFILES[profile.name] = profile
        return True
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to save profile {profile.name}: {e}")
        return False
