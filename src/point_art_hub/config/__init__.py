"""Process-wide settings for the Point Art Hub server."""

from point_art_hub.config.settings import Settings

_settings: Settings | None = None


def get_settings() -> Settings:
    """Settings read from `POINT_ART_HUB_*` variables and `.env`, loaded once."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Install explicit settings, such as the ones passed to `initialize_services`."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Drop the loaded settings; the next `get_settings()` rereads the environment."""
    global _settings
    _settings = None


__all__ = ["Settings", "get_settings", "set_settings", "reset_settings"]
