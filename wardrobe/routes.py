"""
HTTP routes for the wardrobe API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from wardrobe import closet
from wardrobe.background import BackgroundRemover
from wardrobe.config import get_settings
from wardrobe.db import (
    ALL_COLLECTIONS,
    OUTFIT_COLLECTIONS,
    InMemoryUserStore,
    ItemRecord,
    OutfitRecord,
    UserRecord,
    UserStore,
    new_id,
    parse_timestamp,
    utcnow,
)
from wardrobe.dependencies import (
    get_background_remover,
    get_image_storage,
    get_user_store,
)
from wardrobe.errors import NotFoundError, ValidationError
from wardrobe.pipeline import discard_upload, process_upload
from wardrobe.schemas import (
    AddItemRequest,
    AddItemResponse,
    AdminAddDataRequest,
    AdminAddDataResponse,
    Crush,
    DeleteItemRequest,
    FindOrCreateRequest,
    FindOrCreateResponse,
    HealthResponse,
    ItemsResponse,
    MessageResponse,
    OutfitRequest,
    SyncRequest,
    SyncResponse,
    UserSummary,
)
from wardrobe.storage import ImageStorage
from wardrobe.sync import sync

logger = logging.getLogger(__name__)

router = APIRouter()
images_router = APIRouter(tags=["images"])


def _load_user(store: UserStore, user_id: str, *, provision: bool = False) -> UserRecord:
    """
    Fetch a user for a request.

    Write routes pass ``provision=True``; unknown ids are then created when the
    active backend supports it and auto-provisioning is enabled. Reads never
    create users.
    """
    if provision and store.supports_provisioning and get_settings().auto_provision_users:
        return store.ensure_exists(user_id)
    user = store.find_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _require_volatile(store: UserStore) -> InMemoryUserStore:
    if not isinstance(store, InMemoryUserStore):
        raise ValidationError("This endpoint only works in local storage mode")
    return store


@router.get("/health", response_model=HealthResponse)
def health(store: UserStore = Depends(get_user_store)):
    return HealthResponse(status="ok", backend=store.backend_name)


@router.post("/users/findOrCreate", response_model=FindOrCreateResponse)
def find_or_create_user(
    payload: FindOrCreateRequest, store: UserStore = Depends(get_user_store)
):
    email = (payload.email or "").strip()
    if not email:
        raise ValidationError("Email is required")
    user = store.find_or_create(email)
    return FindOrCreateResponse(user=UserSummary(id=user.id, email=user.email))


@router.post("/users/{user_id}/addItem", response_model=AddItemResponse)
def add_item(
    user_id: str,
    payload: AddItemRequest,
    store: UserStore = Depends(get_user_store),
    storage: ImageStorage = Depends(get_image_storage),
    remover: BackgroundRemover = Depends(get_background_remover),
):
    if not payload.category or not payload.imageUrl:
        raise ValidationError("Missing category or imageUrl")
    closet.require_category(payload.category)
    with store.lock(user_id):
        _load_user(store, user_id, provision=True)

    # The slow upload runs outside the user lock; the record is only touched
    # once the image is fully written.
    item = process_upload(
        payload.category,
        payload.imageUrl,
        {"name": payload.name, "brand": payload.brand, "price": payload.price},
        remover=remover,
        storage=storage,
    )
    try:
        with store.lock(user_id):
            user = _load_user(store, user_id)
            closet.add_item(user, payload.category, item)
            store.save(user)
    except Exception:
        discard_upload(storage, item.filename)
        raise

    return AddItemResponse(category=payload.category, item=item.as_dict())


@router.get("/users/{user_id}/items", response_model=ItemsResponse)
def list_items(user_id: str, store: UserStore = Depends(get_user_store)):
    with store.lock(user_id):
        user = _load_user(store, user_id)
        items = closet.list_all_items(user)
    return {
        category: [item.as_dict() for item in entries]
        for category, entries in items.items()
    }


@router.post("/users/{user_id}/deleteItem", response_model=MessageResponse)
def delete_item(
    user_id: str,
    payload: DeleteItemRequest,
    store: UserStore = Depends(get_user_store),
    storage: ImageStorage = Depends(get_image_storage),
):
    if not payload.category or not payload.itemId:
        raise ValidationError("Missing category or itemId")
    with store.lock(user_id):
        user = _load_user(store, user_id)
        closet.remove_item(user, payload.category, payload.itemId, storage=storage)
        store.save(user)
    return MessageResponse(message=f"Item removed from {payload.category}")


def _append_outfit(
    store: UserStore, user_id: str, collection_name: str, payload: OutfitRequest
) -> None:
    if payload.outfit is None:
        raise ValidationError("Missing outfit")
    outfit = OutfitRecord.from_dict(payload.outfit)
    if payload.date is None or payload.date == "":
        outfit.date = utcnow()
    else:
        outfit.date = parse_timestamp(payload.date)
        if outfit.date is None:
            raise ValidationError(f"Invalid date: {payload.date}")
    outfit.id = new_id()
    with store.lock(user_id):
        user = _load_user(store, user_id, provision=True)
        closet.add_outfit(user, collection_name, outfit)
        store.save(user)


@router.post("/users/{user_id}/saveOutfit", response_model=MessageResponse)
def save_outfit(
    user_id: str, payload: OutfitRequest, store: UserStore = Depends(get_user_store)
):
    _append_outfit(store, user_id, "outfits", payload)
    return MessageResponse(message="Outfit saved successfully")


@router.post("/users/{user_id}/crushOutfit", response_model=MessageResponse)
def crush_outfit(
    user_id: str, payload: OutfitRequest, store: UserStore = Depends(get_user_store)
):
    _append_outfit(store, user_id, "crushes", payload)
    return MessageResponse(message="Outfit added to crushes")


@router.get("/users/{user_id}/crushes", response_model=list[Crush])
def list_crushes(user_id: str, store: UserStore = Depends(get_user_store)):
    with store.lock(user_id):
        user = _load_user(store, user_id)
        return closet.list_crushes(user)


@router.post("/users/{user_id}/sync", response_model=SyncResponse)
def sync_user(
    user_id: str, payload: SyncRequest, store: UserStore = Depends(get_user_store)
):
    with store.lock(user_id):
        user = _load_user(store, user_id, provision=True)
        summary = sync(user, payload.items, payload.crushes)
        if summary.inserted:
            store.save(user)
    return SyncResponse(
        userData=summary.as_dict(),
        inserted=summary.inserted,
        skipped=summary.skipped,
    )


@router.get("/debug/database")
def debug_database(store: UserStore = Depends(get_user_store)):
    store = _require_volatile(store)
    users = {
        user.email: {"id": user.id, "email": user.email, **closet.collection_counts(user)}
        for user in store.list_users()
    }
    return {"userCount": len(users), "users": users}


@router.get("/debug/user/{user_id}")
def debug_user(user_id: str, store: UserStore = Depends(get_user_store)):
    store = _require_volatile(store)
    user = store.find_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user.as_dict()


@router.post("/admin/add-data", response_model=AdminAddDataResponse)
def admin_add_data(
    payload: AdminAddDataRequest, store: UserStore = Depends(get_user_store)
):
    store = _require_volatile(store)
    if not payload.email or payload.data is None:
        raise ValidationError("Email and data are required")
    collection_name = payload.data.collection
    entries = payload.data.items
    if not collection_name or entries is None:
        raise ValidationError("Valid collection and items array required")
    if collection_name not in ALL_COLLECTIONS:
        raise ValidationError("Invalid collection")

    user = store.find_or_create(payload.email)
    with store.lock(user.id):
        for entry in entries:
            if collection_name in OUTFIT_COLLECTIONS:
                closet.add_outfit(user, collection_name, OutfitRecord.from_dict(entry))
            else:
                closet.add_item(user, collection_name, ItemRecord.from_dict(entry))
        store.save(user)
    logger.info("Added %d items to %s for %s", len(entries), collection_name, payload.email)
    return AdminAddDataResponse(
        message=f"Added {len(entries)} items to {collection_name}",
        user=user.as_dict(),
    )


@images_router.get("/{filename}")
def get_image(filename: str, storage: ImageStorage = Depends(get_image_storage)):
    if not storage.exists(filename):
        raise NotFoundError("Image not found")
    return Response(content=storage.read_bytes(filename), media_type="image/png")
