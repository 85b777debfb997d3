from .settings import Settings, ClientSettings, settings, client_settings
from .database import DatabaseManager, db_manager, get_database

__all__ = [
    "Settings",
    "ClientSettings",
    "settings",
    "client_settings",
    "DatabaseManager",
    "db_manager",
    "get_database",
]
