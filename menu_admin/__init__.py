"""Restaurant menu admin: file-backed menu items, schedules and theme settings"""

from .config import AppConfig, ConfigurationError
from .errors import ItemNotFoundError, MenuAdminError, PersistenceError, ValidationError
from .menu_service import MenuService
from .record_store import CachedValue, RecordStore
from .schedule import Availability, evaluate
from .settings_service import SettingsService
from .write_coordinator import WriteCoordinator

__all__ = [
    "AppConfig",
    "Availability",
    "CachedValue",
    "ConfigurationError",
    "ItemNotFoundError",
    "MenuAdminError",
    "MenuService",
    "PersistenceError",
    "RecordStore",
    "SettingsService",
    "ValidationError",
    "WriteCoordinator",
    "evaluate",
]
