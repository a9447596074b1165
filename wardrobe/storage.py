"""
Storage for processed garment images: local disk and an in-memory test double.
"""

from __future__ import annotations

import io
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

from PIL import Image, UnidentifiedImageError

from wardrobe.errors import ProcessingError

logger = logging.getLogger(__name__)


class ImageStorage(Protocol):
    """Defines the operations the API needs from image storage."""

    def write_stream(self, filename: str, chunks: Iterable[bytes]) -> None:
        ...

    def delete(self, filename: str) -> bool:
        ...

    def exists(self, filename: str) -> bool:
        ...

    def read_bytes(self, filename: str) -> bytes:
        ...


def is_safe_filename(filename: str) -> bool:
    """True for a bare file name that stays inside the images directory."""
    return bool(filename) and os.path.basename(filename) == filename and filename not in (".", "..")


def _check_filename(filename: str) -> str:
    if not is_safe_filename(filename):
        raise ValueError(f"Invalid image filename: {filename!r}")
    return filename


def verify_image(data: bytes | str | Path) -> None:
    """Raise ProcessingError unless the payload decodes as an image."""
    source = io.BytesIO(data) if isinstance(data, bytes) else data
    try:
        with Image.open(source) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ProcessingError(f"Processed output is not a valid image: {exc}") from exc


@dataclass
class InMemoryImageStorage:
    """Test double for image storage."""

    stored_objects: dict = None
    verify: bool = False

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def write_stream(self, filename: str, chunks: Iterable[bytes]) -> None:
        _check_filename(filename)
        buffer = bytearray()
        for chunk in chunks:
            buffer.extend(chunk)
        payload = bytes(buffer)
        if self.verify:
            verify_image(payload)
        self.stored_objects[filename] = payload

    def delete(self, filename: str) -> bool:
        return self.stored_objects.pop(filename, None) is not None

    def exists(self, filename: str) -> bool:
        return filename in self.stored_objects

    def read_bytes(self, filename: str) -> bytes:
        stored = self.stored_objects.get(filename)
        if stored is None:
            raise FileNotFoundError(filename)
        return stored


@dataclass
class LocalImageStorage:
    """
    Images on local disk under ``images_dir``; served back as static files.

    Writes go to a temporary file in the same directory and are renamed into
    place once the stream completes, so a failed stream never leaves a
    partial file under the final name.
    """

    images_dir: str
    verify: bool = True

    def path_for(self, filename: str) -> Path:
        return Path(self.images_dir) / _check_filename(filename)

    def write_stream(self, filename: str, chunks: Iterable[bytes]) -> None:
        target = self.path_for(filename)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=target.parent, prefix=f".{filename}.", suffix=".part"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                for chunk in chunks:
                    handle.write(chunk)
            if self.verify:
                verify_image(tmp_name)
            os.replace(tmp_name, target)
        except ProcessingError:
            _discard(tmp_name)
            raise
        except OSError as exc:
            _discard(tmp_name)
            raise ProcessingError(f"Failed to write image {filename}: {exc}") from exc
        except BaseException:
            _discard(tmp_name)
            raise
        logger.info("Saved image to %s", target)

    def delete(self, filename: str) -> bool:
        if not is_safe_filename(filename):
            return False
        path = self.path_for(filename)
        if not path.exists():
            return False
        path.unlink()
        return True

    def exists(self, filename: str) -> bool:
        try:
            return self.path_for(filename).is_file()
        except ValueError:
            return False

    def read_bytes(self, filename: str) -> bytes:
        return self.path_for(filename).read_bytes()


def _discard(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
