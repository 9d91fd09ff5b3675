import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional

from supabase import create_client

from app.core.config import get_settings
from app.services.room_scan.errors import ArchivalError

logger = logging.getLogger(__name__)


def get_storage_client():
    settings = get_settings()
    key = settings.supabase_service_role_key or settings.supabase_key
    if not settings.supabase_url or not key:
        raise ArchivalError("Supabase storage credentials are not configured")
    return create_client(settings.supabase_url, key)


def build_scan_object_path(
    prefix: str,
    *,
    property_id: str,
    room_id: str,
    session_id: str,
    index: int,
    content: bytes,
) -> str:
    digest = hashlib.sha1(content).hexdigest()[:12]
    return f"{prefix}/{property_id}/{room_id}/{session_id}/{index}-{digest}.jpg"


def _upload_single(client, bucket: str, path: str, content: bytes, content_type: Optional[str]) -> str:
    options = {"content-type": content_type} if content_type else None
    try:
        result = client.storage.from_(bucket).upload(path, content, options)
    except Exception as exc:
        raise ArchivalError(f"Upload to {bucket} failed") from exc

    error = None
    if isinstance(result, dict):
        error = result.get("error")
    else:
        error = getattr(result, "error", None)

    if error:
        raise ArchivalError(f"Upload to {bucket} failed: {error}")

    return path


@dataclass
class ArchivedImages:
    bucket: str
    keys: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"bucket": self.bucket, "keys": list(self.keys)}


def archive_scan_images(
    *,
    property_id: str,
    room_id: str,
    session_id: str,
    images: list[bytes],
) -> Optional[ArchivedImages]:
    """Upload preprocessed scan JPEGs when archival is enabled.

    Returns ``None`` when ``ROOM_SCAN_STORE_IMAGES`` is off.  Any failure raises
    ``ArchivalError``; callers treat archival as best-effort.

    Path schema: ``{prefix}/{property_id}/{room_id}/{session_id}/{index}-{sha1[:12]}.jpg``
    """
    settings = get_settings()
    if not settings.room_scan_store_images or not settings.room_scan_storage_bucket:
        return None

    client = get_storage_client()
    archived = ArchivedImages(bucket=settings.room_scan_storage_bucket)
    for index, content in enumerate(images):
        path = build_scan_object_path(
            settings.room_scan_storage_prefix,
            property_id=property_id,
            room_id=room_id,
            session_id=session_id,
            index=index,
            content=content,
        )
        archived.keys.append(_upload_single(client, archived.bucket, path, content, "image/jpeg"))
    return archived
