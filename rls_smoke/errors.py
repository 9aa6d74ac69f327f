"""Error types raised by the smoke test."""


class SmokeTestError(Exception):
    """Base class for fatal smoke test errors."""
    pass


class ConfigurationError(SmokeTestError):
    """Raised when required configuration is missing."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Missing environment variables: {', '.join(self.missing)}")


class SetupError(SmokeTestError):
    """Raised when a test identity cannot be created or signed in."""
    pass
