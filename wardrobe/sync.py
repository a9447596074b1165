"""
Reconciles a client-held snapshot of items and crushes with a user record.

Only entries that do not duplicate something already in the record are
appended. The duplicate checks run against the record as it grows, so
re-submitting a payload (or repeating an entry inside one payload) inserts
nothing.

The whole payload is parsed before the record is touched; an entry that
cannot be parsed is skipped, and the record is never left half-merged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from wardrobe.closet import collection_counts
from wardrobe.db import (
    GARMENT_CATEGORIES,
    ItemRecord,
    OutfitRecord,
    UserRecord,
    new_id,
)
from wardrobe.storage import is_safe_filename

logger = logging.getLogger(__name__)


def is_duplicate_item(existing: ItemRecord, candidate: ItemRecord) -> bool:
    if candidate.filename and existing.filename == candidate.filename:
        return True
    return bool(candidate.id) and existing.id == candidate.id


def is_duplicate_crush(existing: OutfitRecord, candidate: OutfitRecord) -> bool:
    if candidate.id and existing.id == candidate.id:
        return True
    return (
        existing.date is not None
        and candidate.date is not None
        and existing.date == candidate.date
    )


@dataclass
class SyncSummary:
    user_id: str
    email: str
    counts: dict[str, int] = field(default_factory=dict)
    inserted: int = 0
    skipped: int = 0

    def as_dict(self) -> dict:
        payload: dict = {"id": self.user_id, "email": self.email}
        payload.update(self.counts)
        return payload


def _parse_item(entry) -> Optional[ItemRecord]:
    """Return the candidate item, or None when it has to be skipped."""
    if not isinstance(entry, Mapping):
        return None
    candidate = ItemRecord.from_dict(dict(entry))
    if not candidate.filename and not candidate.id:
        return None
    # Filenames name images on disk; path-like names could never be served.
    if candidate.filename and not is_safe_filename(candidate.filename):
        return None
    return candidate


def _parse_crush(entry) -> Optional[OutfitRecord]:
    if not isinstance(entry, Mapping):
        return None
    candidate = OutfitRecord.from_dict(dict(entry))
    if not candidate.id and candidate.date is None:
        return None
    return candidate


def _merge(collection: list, candidates: list, is_duplicate) -> int:
    inserted = 0
    for candidate in candidates:
        if any(is_duplicate(existing, candidate) for existing in collection):
            continue
        if not candidate.id:
            candidate.id = new_id()
        collection.append(candidate)
        inserted += 1
    return inserted


def sync(
    user: UserRecord,
    client_items: Optional[Mapping] = None,
    client_crushes: Optional[Iterable] = None,
) -> SyncSummary:
    summary = SyncSummary(user_id=user.id, email=user.email)

    item_batches: dict[str, list[ItemRecord]] = {}
    if isinstance(client_items, Mapping):
        for category in GARMENT_CATEGORIES:
            entries = client_items.get(category)
            if not isinstance(entries, list):
                continue
            parsed = [_parse_item(entry) for entry in entries]
            item_batches[category] = [c for c in parsed if c is not None]
            summary.skipped += len(parsed) - len(item_batches[category])

    crush_batch: Optional[list[OutfitRecord]] = None
    if isinstance(client_crushes, list):
        parsed = [_parse_crush(entry) for entry in client_crushes]
        crush_batch = [c for c in parsed if c is not None]
        summary.skipped += len(parsed) - len(crush_batch)

    for category, candidates in item_batches.items():
        inserted = _merge(user.collection(category), candidates, is_duplicate_item)
        summary.inserted += inserted
        logger.info(
            "Synced %d %s for user %s (%d new)",
            len(candidates),
            category,
            user.email,
            inserted,
        )

    if crush_batch is not None:
        if user.crushes is None:
            user.crushes = []
        inserted = _merge(user.crushes, crush_batch, is_duplicate_crush)
        summary.inserted += inserted
        logger.info(
            "Synced %d crushes for user %s (%d new)",
            len(crush_batch),
            user.email,
            inserted,
        )

    if summary.skipped:
        logger.warning(
            "Skipped %d unusable sync entries for user %s", summary.skipped, user.email
        )

    summary.counts = collection_counts(user)
    return summary
