"""Exception hierarchy for detector post-processing."""


class DecodaxError(Exception):
    """Base class for all decodax errors."""

    pass


class ConfigurationError(DecodaxError, ValueError):
    """Raised at model setup when configuration or model topology is invalid."""

    pass


class OutputShapeError(ConfigurationError):
    """Raised when an output tensor does not match the generated anchor table."""

    pass
