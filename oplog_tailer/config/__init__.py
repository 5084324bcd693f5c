from .settings import TailerSettings, get_settings, reload_settings

__all__ = ["TailerSettings", "get_settings", "reload_settings"]
