"""
rental_services.photo_storage -- Object storage for condition photos.

Responsibility:
    Structural protocol for a put/get/delete object store, a
    filesystem-backed implementation, and the key layout for condition
    photos.

Invariants enforced:
    - Keys are ``{booking_id}/{phase}/{photo_type}-{timestamp}.{ext}``.
    - Keys never escape the storage root.

Failure modes:
    - PhotoUploadError wrapping any OSError on write, read or delete.
"""

from __future__ import annotations

import mimetypes
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable
from uuid import UUID

from rental_config import ReturnPolicy
from rental_kernel.domain.booking import PhotoPhase, PhotoType
from rental_kernel.exceptions import PhotoUploadError
from rental_kernel.logging_config import get_logger

logger = get_logger("services.photo_storage")

_EXTENSION_OVERRIDES = {
    "image/jpeg": "jpg",
    "image/heic": "heic",
}


@runtime_checkable
class ObjectStorage(Protocol):
    def put(self, key: str, content: bytes, content_type: str) -> str:
        ...

    def get(self, key: str) -> bytes:
        ...

    def delete(self, key: str) -> None:
        ...


def extension_for(content_type: str) -> str:
    if content_type in _EXTENSION_OVERRIDES:
        return _EXTENSION_OVERRIDES[content_type]
    guessed = mimetypes.guess_extension(content_type)
    return guessed.lstrip(".") if guessed else "bin"


def photo_key(
    booking_id: UUID,
    phase: PhotoPhase,
    photo_type: PhotoType,
    captured_at: datetime,
    content_type: str,
) -> str:
    stamp = int(captured_at.timestamp() * 1000)
    return (
        f"{booking_id}/{phase.value}/{photo_type.value}-{stamp}."
        f"{extension_for(content_type)}"
    )


class LocalObjectStorage:
    """Writes objects under a root directory, one file per key."""

    def __init__(self, root: Path | str, bucket: str = "condition-photos") -> None:
        self._bucket = bucket
        self._root = (Path(root) / bucket).resolve()

    @classmethod
    def for_policy(cls, root: Path | str, policy: ReturnPolicy) -> LocalObjectStorage:
        """Storage rooted at the policy's photo bucket."""
        return cls(root, bucket=policy.photo_bucket)

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise PhotoUploadError(key, "key escapes storage root")
        return path

    def put(self, key: str, content: bytes, content_type: str) -> str:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            logger.warning(
                "photo_upload_failed",
                extra={"key": key, "detail": str(exc)},
            )
            raise PhotoUploadError(key, str(exc)) from exc
        logger.info(
            "photo_stored",
            extra={"key": key, "content_type": content_type, "size": len(content)},
        )
        return key

    def get(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise PhotoUploadError(key, str(exc)) from exc

    def delete(self, key: str) -> None:
        """Remove an object.  A missing object is not an error."""
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise PhotoUploadError(key, str(exc)) from exc
        logger.info("photo_deleted", extra={"key": key})
