"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from wardrobe.background import (
    BackgroundRemover,
    PassthroughBackgroundRemover,
    ReplicateBackgroundRemover,
)
from wardrobe.config import Settings, get_settings
from wardrobe.db import InMemoryUserStore, PostgresUserStore, UserStore
from wardrobe.storage import ImageStorage, LocalImageStorage

logger = logging.getLogger(__name__)

_user_store: UserStore | None = None
_image_storage: ImageStorage | None = None
_background_remover: BackgroundRemover | None = None


def select_user_store(settings: Settings) -> UserStore:
    """
    Pick the backend once per process.

    The durable store is used when a database URL is configured and reachable.
    An unreachable database degrades to the in-memory store unless
    ``fallback_to_memory`` is disabled.
    """
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory user store")
        return InMemoryUserStore()
    try:
        store = PostgresUserStore(settings.database_url)
        store.ping()
    except (SQLAlchemyError, ImportError) as exc:
        # ImportError: the URL names a DBAPI driver that is not installed.
        if not settings.fallback_to_memory:
            raise
        logger.error("Database connection failed: %s", exc)
        logger.warning("Falling back to in-memory user store; data will not persist")
        return InMemoryUserStore()
    logger.info("Connected to durable user store")
    return store


def get_user_store() -> UserStore:
    """
    Return a singleton user store so state persists across requests.
    """
    global _user_store
    if _user_store:
        return _user_store
    _user_store = select_user_store(get_settings())
    return _user_store


def get_image_storage() -> ImageStorage:
    global _image_storage
    if _image_storage:
        return _image_storage

    settings = get_settings()
    _image_storage = LocalImageStorage(
        images_dir=settings.images_dir, verify=settings.verify_images
    )
    return _image_storage


def get_background_remover() -> BackgroundRemover:
    global _background_remover
    if _background_remover:
        return _background_remover

    settings = get_settings()
    if settings.replicate_api_token:
        _background_remover = ReplicateBackgroundRemover(
            api_token=settings.replicate_api_token,
            model_version=settings.rembg_model_version,
            api_url=settings.replicate_api_url,
            timeout_seconds=settings.background_removal_timeout_seconds,
        )
    else:
        logger.warning(
            "REPLICATE_API_TOKEN not set; uploads are stored without background removal"
        )
        _background_remover = PassthroughBackgroundRemover(
            timeout_seconds=settings.background_removal_timeout_seconds
        )
    return _background_remover


def reset_dependencies() -> None:
    """Drop cached singletons (useful in tests)."""
    global _user_store, _image_storage, _background_remover
    _user_store = None
    _image_storage = None
    _background_remover = None
