"""
Upload pipeline: source image URL -> background-removed PNG on disk -> Item.
"""

from __future__ import annotations

import logging
import time
from typing import Optional
from urllib.parse import urlparse

from wardrobe.background import BackgroundRemover
from wardrobe.closet import require_category
from wardrobe.db import ItemRecord, new_id, utcnow
from wardrobe.errors import ValidationError
from wardrobe.storage import ImageStorage

logger = logging.getLogger(__name__)


def derive_brand(image_url: str) -> str:
    """
    Guess a brand from the image host: the first host label, or the second
    when the first is ``www``.
    """
    hostname = urlparse(image_url).hostname
    if not hostname:
        raise ValidationError(f"Invalid imageUrl: {image_url}")
    parts = hostname.split(".")
    brand = parts[0]
    if brand == "www" and len(parts) > 1:
        brand = parts[1]
    return brand


def build_filename(brand: str, category: str, timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{brand}_{category}_{timestamp_ms}.png"


def process_upload(
    category: Optional[str],
    image_url: Optional[str],
    metadata: Optional[dict],
    *,
    remover: BackgroundRemover,
    storage: ImageStorage,
) -> ItemRecord:
    """
    Remove the background of ``image_url`` and store the result.

    Returns the new (unregistered) item. Nothing is written under the final
    filename unless the whole stream was received.
    """
    if not category or not image_url:
        raise ValidationError("Missing category or imageUrl")
    require_category(category)
    metadata = metadata or {}

    derived_brand = derive_brand(image_url)
    filename = build_filename(derived_brand, category)

    chunks = remover.remove(image_url)
    storage.write_stream(filename, chunks)
    logger.info("Background removed and saved to %s", filename)

    price = metadata.get("price")
    return ItemRecord(
        filename=filename,
        name=metadata.get("name") or "",
        brand=metadata.get("brand") or derived_brand,
        price="" if price is None else str(price),
        added_at=utcnow(),
        id=new_id(),
    )


def discard_upload(storage: ImageStorage, filename: str) -> None:
    """Remove a written image whose item could not be registered."""
    try:
        storage.delete(filename)
    except OSError as exc:
        logger.warning("Failed to remove orphaned image %s: %s", filename, exc)

