"""
Theme and filter-category settings
Colors and display sizes are validated and clamped before they are stored
"""
import logging
import math
import re

from .errors import PersistenceError, ValidationError
from .otel_instrumentation import instrument_operation
from .record_store import RecordStore

logger = logging.getLogger(__name__)

_COLOR_RE = re.compile(r"^#[0-9A-F]{6}$", re.IGNORECASE)

MAX_FILTER_FIELD_LENGTH = 100

DEFAULT_COLORS = {
    "primaryColor": "#0d3b2e",
    "secondaryColor": "#1a5c4a",
    "textColor": "#ffffff",
    "accentColor": "#ffd700",
}

# name: (minimum, maximum, default)
SIZE_LIMITS = {
    "headingFontSize": (2, 8, 4),
    "itemNameSize": (1, 3, 1.8),
    "descriptionSize": (0.7, 1.5, 0.95),
    "priceSize": (1, 3, 1.5),
    "cardOpacity": (0, 1, 0.05),
    "gridGap": (0.5, 5, 2),
}


def default_filter_categories():
    return [
        {"category": "starters", "label": "Starters", "enabled": True},
        {"category": "lorem ipsum", "label": "Lorem Ipsum", "enabled": True},
        {"category": "chicken burgers", "label": "Chicken Burgers", "enabled": True},
        {"category": "fries", "label": "Fries", "enabled": True},
        {"category": "dessert", "label": "Dessert", "enabled": True},
        {"category": "drinks", "label": "Drinks", "enabled": True},
        {"category": "add ons", "label": "Add Ons", "enabled": True},
        {"category": "dips", "label": "Dips", "enabled": True},
    ]


def default_settings():
    settings = dict(DEFAULT_COLORS)
    settings.update({name: limits[2] for name, limits in SIZE_LIMITS.items()})
    settings["filterCategories"] = default_filter_categories()
    return settings


def validate_color(value, default):
    if not isinstance(value, str) or not _COLOR_RE.match(value):
        return default
    return value


def clamp(value, minimum, maximum, default):
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(minimum, min(maximum, number))


def normalize_filter_categories(filters):
    """Clean filter entries: lowercase keys, trimmed labels, first entry per category wins"""
    if not isinstance(filters, list):
        return default_filter_categories()

    result = []
    seen = set()
    for entry in filters:
        if not isinstance(entry, dict) or not entry.get("category") or not entry.get("label"):
            continue
        category = str(entry["category"]).strip().lower()
        label = str(entry["label"]).strip()
        if not category or not label:
            continue
        if len(category) > MAX_FILTER_FIELD_LENGTH or len(label) > MAX_FILTER_FIELD_LENGTH:
            continue
        if category in seen:
            continue
        seen.add(category)
        result.append({"category": category, "label": label, "enabled": bool(entry.get("enabled"))})
    return result


def normalize_settings(data: dict) -> dict:
    settings = {
        name: validate_color(data.get(name), default) for name, default in DEFAULT_COLORS.items()
    }
    for name, (minimum, maximum, default) in SIZE_LIMITS.items():
        settings[name] = clamp(data.get(name), minimum, maximum, default)
    settings["filterCategories"] = normalize_filter_categories(data.get("filterCategories"))
    return settings


class SettingsService:
    def __init__(self, store: RecordStore):
        self.store = store

    async def get(self) -> dict:
        """Stored settings; a missing or broken filter list is replaced by the defaults"""
        settings = await self.store.read()
        if not isinstance(settings.get("filterCategories"), list):
            settings["filterCategories"] = default_filter_categories()
        return settings

    @instrument_operation("update_settings")
    async def update(self, data: dict) -> dict:
        if not isinstance(data, dict):
            raise ValidationError("Settings must be an object")
        settings = normalize_settings(data)
        if not await self.store.write(settings):
            raise PersistenceError("Failed to save settings")
        logger.info(f"Settings updated ({len(settings['filterCategories'])} filter categories)")
        return settings
