from messaging_gateway.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
