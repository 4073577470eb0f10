"""
Application configuration.

Settings are read once at process start and passed explicitly to the
components that need them.
"""

from .settings_model import DEFAULT_SETTINGS_FILE, Settings


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, .env and the JSON settings file.

    Keyword overrides take precedence over every other source.

    Raises:
        pydantic.ValidationError: If the configuration is invalid.
    """
    return Settings(**overrides)


__all__ = ["DEFAULT_SETTINGS_FILE", "Settings", "load_settings"]
