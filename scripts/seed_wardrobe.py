"""
Seed wardrobe records into the configured durable store.

Reads a JSON file shaped like ``{email: {collection: [entries]}}`` and merges
each user's entries using the same duplicate rules as the sync endpoint, so
the script can be re-run safely. Saved outfits have no natural key and are
only skipped when their ``id`` is already present.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from wardrobe.closet import add_outfit
from wardrobe.db import (
    ALL_COLLECTIONS,
    GARMENT_CATEGORIES,
    InMemoryUserStore,
    OutfitRecord,
    UserRecord,
    UserStore,
)
from wardrobe.dependencies import get_user_store
from wardrobe.sync import sync


logger = logging.getLogger(__name__)


def merge_outfits(user: UserRecord, entries: list) -> int:
    known = {outfit.id for outfit in user.outfits if outfit.id}
    inserted = 0
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        outfit = OutfitRecord.from_dict(entry)
        if outfit.id and outfit.id in known:
            continue
        add_outfit(user, "outfits", outfit)
        known.add(outfit.id)
        inserted += 1
    return inserted


def seed_user(
    store: UserStore, email: str, collections: dict[str, Any], *, dry_run: bool
) -> int:
    unknown = sorted(set(collections) - set(ALL_COLLECTIONS))
    if unknown:
        logger.warning("Ignoring unknown collections for %s: %s", email, ", ".join(unknown))

    user = store.find_by_email(email)
    if user is None:
        if dry_run:
            user = UserRecord(id="(new)", email=email)
        else:
            user = store.find_or_create(email)

    with store.lock(user.id):
        items = {name: collections[name] for name in GARMENT_CATEGORIES if name in collections}
        summary = sync(user, items, collections.get("crushes"))
        inserted = summary.inserted
        if isinstance(collections.get("outfits"), list):
            inserted += merge_outfits(user, collections["outfits"])
        if summary.skipped:
            logger.warning("Skipped %d entries without a key for %s", summary.skipped, email)
        if inserted and not dry_run:
            store.save(user)
    return inserted


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed wardrobe records")
    parser.add_argument(
        "source",
        type=Path,
        help="JSON file mapping email to {collection: [entries]}",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many entries would be inserted without saving",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")

    try:
        payload = json.loads(args.source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read %s: %s", args.source, exc)
        return 1
    if not isinstance(payload, dict):
        logger.error("Expected a JSON object keyed by email in %s", args.source)
        return 1

    store = get_user_store()
    if isinstance(store, InMemoryUserStore):
        logger.error("No durable store configured; set DATABASE_URL to seed records")
        return 1

    total = 0
    for email, collections in payload.items():
        if not isinstance(collections, dict):
            logger.warning("Skipping %s: expected an object of collections", email)
            continue
        inserted = seed_user(store, email, collections, dry_run=args.dry_run)
        logger.info("%s: %d new entries", email, inserted)
        total += inserted

    logger.info("%s %d entries", "Would insert" if args.dry_run else "Inserted", total)
    return 0


if __name__ == "__main__":
    sys.exit(main())
