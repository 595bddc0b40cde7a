"""
Menu item operations
Validation, id assignment and availability on top of the menu record store
"""
import json
import logging
import math
import re
from datetime import datetime
from typing import Optional

from .errors import ItemNotFoundError, PersistenceError, ValidationError
from .otel_instrumentation import instrument_operation
from .record_store import RecordStore, numeric_id
from .schedule import describe, evaluate, normalize_schedule, validate_schedule

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200
MAX_CATEGORY_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MAX_TAG_LENGTH = 50
MAX_REASON_LENGTH = 200
MAX_PRICE = 500
MAX_IMAGE_BYTES = 5 * 1024 * 1024

MANUALLY_UNAVAILABLE = "manually unavailable"

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_tags(tags) -> list:
    """Tags from a list or a comma separated string, blanks dropped"""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    elif not isinstance(tags, (list, tuple)):
        return []
    return [t for t in (_text(tag) for tag in tags if tag is not None) if t]


def parse_price(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(price) or math.isinf(price):
        return None
    return price


def parse_flag(value, default=True) -> Optional[bool]:
    """Boolean from JSON/form input; None when it cannot be read as one"""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
    return None


def _image_error(image) -> Optional[str]:
    if not isinstance(image, str):
        return "Image must be a data URL or base64 string"
    if image.startswith("data:image/"):
        header, _, payload = image.partition(",")
        if not payload or ";base64" not in header:
            return "Image data URL must be base64 encoded"
    else:
        payload = image
        if not _BASE64_RE.match(payload):
            return "Image must be a data URL or base64 string"
    if len(payload) * 3 // 4 > MAX_IMAGE_BYTES:
        return "Image must be 5MB or less"
    return None


def validate_item(item: dict) -> Optional[str]:
    """Return the first validation error for a normalized item, or None"""
    name = item.get("name")
    if not name or not isinstance(name, str):
        return "Item name is required and must be a non-empty string"
    if len(name) > MAX_NAME_LENGTH:
        return f"Item name must be {MAX_NAME_LENGTH} characters or less"

    category = item.get("category")
    if not category or not isinstance(category, str):
        return "Category is required and must be a non-empty string"
    if len(category) > MAX_CATEGORY_LENGTH:
        return f"Category must be {MAX_CATEGORY_LENGTH} characters or less"

    price = item.get("price")
    if price is None or price < 0 or price > MAX_PRICE:
        return f"Price must be a number between 0 and {MAX_PRICE}"

    description = item.get("description")
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        return f"Description must be a string with {MAX_DESCRIPTION_LENGTH} characters or less"

    for tag in item.get("tags") or []:
        if len(tag) > MAX_TAG_LENGTH:
            return f"Tags must be {MAX_TAG_LENGTH} characters or less"

    if item.get("image"):
        error = _image_error(item["image"])
        if error:
            return error

    reason = item.get("unavailableReason")
    if reason and len(reason) > MAX_REASON_LENGTH:
        return f"Unavailable reason must be {MAX_REASON_LENGTH} characters or less"

    return None


def normalize_item(data, previous=None, keep_previous_image_if_omitted=False) -> dict:
    """
    Build the stored form of a menu item from raw input.

    Raises ValidationError when a field is invalid. When
    keep_previous_image_if_omitted is set and data has no "image" key, the
    image of previous is carried over.
    """
    if not isinstance(data, dict):
        raise ValidationError("Item data must be an object")

    if "image" not in data and keep_previous_image_if_omitted and previous:
        image = previous.get("image")
    else:
        image = data.get("image")
    if isinstance(image, str):
        image = image.strip()

    available = parse_flag(data.get("available"), default=True)
    if available is None:
        raise ValidationError("Available must be true or false")

    raw_schedule = data.get("schedule")
    if raw_schedule == {}:
        raw_schedule = None
    error = validate_schedule(raw_schedule)
    if error:
        raise ValidationError(error)

    item = {
        "name": _text(data.get("name")),
        "category": _text(data.get("category")),
        "price": parse_price(data.get("price")),
        "description": _text(data.get("description")),
        "tags": parse_tags(data.get("tags")),
        "image": image or None,
        "available": available,
    }
    reason = _text(data.get("unavailableReason"))
    if not available and reason:
        item["unavailableReason"] = reason
    schedule = normalize_schedule(raw_schedule)
    if schedule:
        item["schedule"] = schedule

    error = validate_item(item)
    if error:
        raise ValidationError(error)
    return item


def annotate_availability(item: dict, now: datetime) -> dict:
    """Copy of item with an "availability" entry for the given instant"""
    annotated = dict(item)
    schedule = item.get("schedule")
    if item.get("available", True) is False:
        availability = {
            "isAvailable": False,
            "reason": item.get("unavailableReason") or MANUALLY_UNAVAILABLE,
            "nextAvailable": None,
        }
    else:
        availability = evaluate(schedule, now).to_dict()
    availability["schedule"] = describe(schedule)
    annotated["availability"] = availability
    return annotated


def sort_items(items: list, sort_type: Optional[str] = None) -> list:
    """Sorted copy of items: by name or price, or by id for anything else"""
    if sort_type == "name-asc":
        return sorted(items, key=lambda i: _text(i.get("name")).lower())
    if sort_type == "name-desc":
        return sorted(items, key=lambda i: _text(i.get("name")).lower(), reverse=True)
    if sort_type in ("price-asc", "price-desc"):
        return sorted(
            items,
            key=lambda i: parse_price(i.get("price")) or 0,
            reverse=sort_type == "price-desc",
        )
    return sorted(items, key=numeric_id)


def filter_by_category(items: list, category: Optional[str]) -> list:
    if not category or category.lower() == "all":
        return list(items)
    wanted = category.strip().lower()
    return [i for i in items if _text(i.get("category")).lower() == wanted]


def _require_id(item_id) -> int:
    if isinstance(item_id, bool):
        raise ValidationError("Invalid item ID")
    try:
        value = int(item_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid item ID")
    if value <= 0:
        raise ValidationError("Invalid item ID")
    return value


def _find_index(items: list, item_id: int) -> int:
    for index, item in enumerate(items):
        if numeric_id(item) == item_id:
            return index
    return -1


class MenuService:
    """Menu item CRUD and availability backed by a RecordStore"""

    def __init__(self, store: RecordStore):
        self.store = store

    async def list_items(self) -> list:
        return await self.store.read()

    @instrument_operation("list_visible")
    async def list_visible(self, now: Optional[datetime] = None) -> list:
        """All items annotated with their availability at now; nothing is hidden"""
        now = now or datetime.now()
        items = await self.store.read()
        return [annotate_availability(item, now) for item in items if isinstance(item, dict)]

    async def get(self, item_id) -> dict:
        item_id = _require_id(item_id)
        items = await self.store.read()
        index = _find_index(items, item_id)
        if index == -1:
            raise ItemNotFoundError("Item not found")
        return items[index]

    def _allocate_id(self, items: list, refresh=False) -> int:
        taken = {numeric_id(i) for i in items}
        new_id = self.store.next_id(items, refresh=refresh)
        while new_id in taken:
            new_id = self.store.next_id(items)
        return new_id

    async def _mutate(self, change, failure_message: str):
        ok, result = await self.store.mutate(change)
        if not ok:
            raise PersistenceError(failure_message)
        return result

    @instrument_operation("create_item")
    async def create(self, data: dict) -> dict:
        fields = normalize_item(data)

        def add(items):
            item = {"id": self._allocate_id(items), **fields}
            items.append(item)
            return items, item

        item = await self._mutate(add, "Failed to save item")
        logger.info(f"Created menu item {item['id']} ({item['name']})")
        return item

    @instrument_operation("update_item")
    async def update(self, item_id, data: dict, keep_previous_image_if_omitted: bool = True) -> dict:
        """Replace an item wholesale; see normalize_item for the image fallback"""
        item_id = _require_id(item_id)

        def replace(items):
            index = _find_index(items, item_id)
            item = normalize_item(
                data,
                previous=items[index] if index != -1 else None,
                keep_previous_image_if_omitted=keep_previous_image_if_omitted,
            )
            if index == -1:
                raise ItemNotFoundError("Item not found")
            item = {"id": item_id, **item}
            items[index] = item
            return items, item

        item = await self._mutate(replace, "Failed to update item")
        logger.info(f"Updated menu item {item_id}")
        return item

    @instrument_operation("delete_item")
    async def delete(self, item_id) -> None:
        item_id = _require_id(item_id)

        def remove(items):
            remaining = [i for i in items if numeric_id(i) != item_id]
            if len(remaining) == len(items):
                raise ItemNotFoundError("Item not found")
            return remaining, None

        await self._mutate(remove, "Failed to delete item")
        logger.info(f"Deleted menu item {item_id}")

    @instrument_operation("set_availability")
    async def set_availability(self, item_id, available, reason: Optional[str] = None) -> dict:
        """Toggle only the manual availability flag and its reason"""
        item_id = _require_id(item_id)
        flag = parse_flag(available, default=None)
        if flag is None:
            raise ValidationError("Available must be true or false")
        reason = _text(reason)
        if len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(f"Unavailable reason must be {MAX_REASON_LENGTH} characters or less")

        def toggle(items):
            index = _find_index(items, item_id)
            if index == -1:
                raise ItemNotFoundError("Item not found")
            item = items[index]
            item["available"] = flag
            if flag or not reason:
                item.pop("unavailableReason", None)
            else:
                item["unavailableReason"] = reason
            return items, item

        item = await self._mutate(toggle, "Failed to update availability")
        logger.info(f"Menu item {item_id} marked {'available' if flag else 'unavailable'}")
        return item

    async def export_items(self) -> dict:
        items = await self.store.read()
        return {"data": items, "count": len(items)}

    @instrument_operation("import_items")
    async def import_items(self, data, replace: bool = False) -> dict:
        """
        Merge (or with replace, swap in) a list of items.

        Invalid items are skipped. Items without a positive id, and items
        whose id is already taken, get freshly assigned ids.
        """
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError as e:
                raise ValidationError(f"Invalid JSON format: {e}")
        if not isinstance(data, list):
            raise ValidationError("Data must be an array of menu items")

        imported = []
        skipped = 0
        for raw in data:
            try:
                item = normalize_item(raw)
            except ValidationError as e:
                skipped += 1
                logger.debug(f"Skipping imported item: {e}")
                continue
            if numeric_id(raw) > 0:
                item = {"id": numeric_id(raw), **item}
            imported.append(item)

        if not imported:
            raise ValidationError("No valid items found in import data")

        def merge(existing):
            final = ([] if replace else existing) + imported
            seen = set()
            refreshed = False
            for index, item in enumerate(final):
                item_id = numeric_id(item)
                if item_id <= 0 or item_id in seen:
                    # First allocation rescans so imported ids count towards the max
                    item_id = self._allocate_id(final, refresh=not refreshed)
                    refreshed = True
                    final[index] = {**item, "id": item_id}
                seen.add(item_id)
            return final, len(final)

        total = await self._mutate(merge, "Failed to save imported data")
        logger.info(f"Imported {len(imported)} menu items ({skipped} skipped, replace={replace})")
        return {"count": len(imported), "total": total, "skipped": skipped}

    async def categories(self) -> list:
        """Sorted unique non-blank categories of the stored items"""
        items = await self.store.read()
        return sorted({_text(i.get("category")) for i in items if isinstance(i, dict)} - {""})
