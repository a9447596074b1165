"""
Category collection operations on a single user record.

These functions only mutate the in-memory ``UserRecord``; callers hold the
user's lock and persist with ``UserStore.save``.
"""

from __future__ import annotations

import logging
from typing import Optional

from wardrobe.db import (
    GARMENT_CATEGORIES,
    OUTFIT_COLLECTIONS,
    ALL_COLLECTIONS,
    ItemRecord,
    OutfitRecord,
    UserRecord,
    new_id,
)
from wardrobe.errors import InvalidCategoryError, NotFoundError
from wardrobe.storage import ImageStorage

logger = logging.getLogger(__name__)


def require_category(category: str) -> str:
    if category not in GARMENT_CATEGORIES:
        raise InvalidCategoryError(
            f"Invalid category '{category}'; expected one of {', '.join(GARMENT_CATEGORIES)}"
        )
    return category


def add_item(user: UserRecord, category: str, item: ItemRecord) -> ItemRecord:
    require_category(category)
    if not item.id:
        item.id = new_id()
    user.collection(category).append(item)
    logger.info(
        "Added item %s to %s for user %s (%d items)",
        item.filename,
        category,
        user.email,
        len(user.collection(category)),
    )
    return item


def list_items(user: UserRecord, category: str) -> list[ItemRecord]:
    require_category(category)
    return list(user.collection(category) or [])


def list_all_items(user: UserRecord) -> dict[str, list[ItemRecord]]:
    return {category: list_items(user, category) for category in GARMENT_CATEGORIES}


def find_item(user: UserRecord, category: str, identifier: str) -> Optional[int]:
    for index, item in enumerate(user.collection(category)):
        if item.id == identifier or item.filename == identifier:
            return index
    return None


def remove_item(
    user: UserRecord,
    category: str,
    identifier: str,
    storage: Optional[ImageStorage] = None,
) -> ItemRecord:
    """
    Remove an item matched by ``id`` or ``filename``.

    The backing image is deleted on a best-effort basis: a failed deletion is
    logged and the record removal still stands.
    """
    if category not in GARMENT_CATEGORIES:
        raise NotFoundError(f"Category '{category}' not found for user")
    index = find_item(user, category, identifier)
    if index is None:
        raise NotFoundError("Item not found in user's collection")
    removed = user.collection(category).pop(index)

    if storage is not None and removed.filename:
        try:
            storage.delete(removed.filename)
        except (OSError, ValueError) as exc:
            logger.warning("Error deleting image %s: %s", removed.filename, exc)
    logger.info("Removed item %s from %s for user %s", removed.id, category, user.email)
    return removed


def add_outfit(user: UserRecord, collection_name: str, outfit: OutfitRecord) -> OutfitRecord:
    if collection_name not in OUTFIT_COLLECTIONS:
        raise InvalidCategoryError(
            f"Invalid outfit collection '{collection_name}'; expected outfits or crushes"
        )
    if getattr(user, collection_name, None) is None:
        setattr(user, collection_name, [])
    if not outfit.id:
        outfit.id = new_id()
    user.collection(collection_name).append(outfit)
    logger.info(
        "Added outfit to %s for user %s, total %s: %d",
        collection_name,
        user.email,
        collection_name,
        len(user.collection(collection_name)),
    )
    return outfit


def list_crushes(user: UserRecord) -> list[dict]:
    """Reshape stored crushes into the ``{outfit, date}`` read form."""
    return [
        {
            "outfit": crush.parts(),
            "date": crush.date.isoformat() if crush.date else None,
        }
        for crush in user.crushes or []
    ]


def collection_counts(user: UserRecord) -> dict[str, int]:
    return {name: len(user.collection(name) or []) for name in ALL_COLLECTIONS}
