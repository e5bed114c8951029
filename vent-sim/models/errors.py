class VentError(Exception):
    """Base class for vent simulator errors."""


class UnreachableStateError(VentError, RuntimeError):
    """A device reached a state its configuration should make impossible."""


class VentConfigurationError(VentError, ValueError):
    """A vent configuration value is out of range."""


class InvalidPayloadError(VentError, ValueError):
    """A remote command payload carries a malformed field."""

    def __init__(self, field: str, value, reason: str = "malformed"):
        self.field = field
        self.value = value
        super().__init__(f"{field}: {reason} ({value!r})")
