"""Saving and validating multipart uploads under UPLOAD_DIR."""

import uuid
from pathlib import Path

from fastapi import UploadFile

from finance_tracker.config import get_settings
from finance_tracker.errors import BadRequestError

AUDIO_EXTENSIONS = (".mp3", ".wav", ".m4a", ".aac", ".ogg", ".webm")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".heic", ".gif")


def upload_root() -> Path:
    return Path(get_settings().upload_dir)


def public_uri(path: Path) -> str:
    """/uploads/... URI under which a saved file is served."""
    return "/uploads/" + path.relative_to(upload_root()).as_posix()


async def save_upload(upload: UploadFile, subdir: str, max_bytes: int) -> Path:
    extension = Path(upload.filename or "").suffix.lower()
    content = await upload.read()
    if len(content) > max_bytes:
        raise BadRequestError(f"File size exceeds {max_bytes // (1024 * 1024)}MB limit")

    target_dir = upload_root() / subdir
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{uuid.uuid4().hex}{extension}"
    target.write_bytes(content)
    return target


def validate_audio_file(path: Path) -> dict:
    """Check extension and size of a saved recording; raises BadRequestError."""
    if not path.exists():
        raise BadRequestError("File not found")

    max_bytes = get_settings().max_audio_size_bytes
    size = path.stat().st_size
    extension = path.suffix.lower()
    if size > max_bytes:
        raise BadRequestError(f"File size exceeds {max_bytes // (1024 * 1024)}MB limit")
    if extension not in AUDIO_EXTENSIONS:
        raise BadRequestError(f"Invalid file type. Allowed: {', '.join(AUDIO_EXTENSIONS)}")

    return {"size": size, "extension": extension, "format": extension.lstrip(".")}


def ensure_image(upload: UploadFile) -> None:
    extension = Path(upload.filename or "").suffix.lower()
    content_type = upload.content_type or ""
    if extension not in IMAGE_EXTENSIONS and not content_type.startswith("image/"):
        raise BadRequestError("Only image files are allowed")
