"""
PlaceShare Backend: File Storage Service
=========================================

What:  Stores uploaded profile and place images, and deletes them again.
How:   Validates extension, declared type, size and the content's own
       signature (python-magic reads the header bytes), writes the bytes under
       <storage_root>/<upload_dir>/<uuid>.<ext> with aiofiles, and returns
       the relative path that gets stored on the User/Place document.
Who:   Upload routes call validate_and_store(); ConsistencyManager and
       AccountService call cleanup_file() after their transaction commits.

Cleanup is best-effort: cleanup_file() never raises. A file that cannot be
removed is logged at WARNING and left behind.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import Optional

import aiofiles
import magic

from placeshare.config import settings
from placeshare.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

# MIME type → stored extension, as accepted by the upload endpoints
ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg"}

# Uploads are stored under the extension the client sent; .jpeg and .jpg
# both have to carry JPEG content
EXTENSION_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


class FileService:
    """
    Manages the upload directory.

    Directory Structure:
        <storage_root>/
        └── uploads/
            └── images/
                ├── user-profile-default.png   (never deleted)
                ├── a1b2c3d4-....png
                └── e5f6g7h8-....jpg
    """

    def __init__(self, storage_root: Optional[str] = None, upload_dir: Optional[str] = None):
        """
        Args:
            storage_root: Override settings.storage_root (used in tests).
            upload_dir: Override settings.upload_dir.
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.upload_dir = (upload_dir or settings.upload_dir).strip("/")
        (self.storage_root / self.upload_dir).mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    def validate_extension(self, filename: str) -> str:
        """Returns the normalized extension (lowercase, with dot)."""
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="image",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_content_type(self, content_type: Optional[str]) -> None:
        """Reject uploads whose declared MIME type is not an accepted image type."""
        if content_type and content_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=f"Content type '{content_type}' is not supported. Upload a PNG or JPEG image.",
                field="image",
                context={"content_type": content_type},
            )

    def validate_size(self, actual_size: int) -> None:
        max_mb = settings.max_file_size / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(message="The uploaded image is empty.", field="image")

        if actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"Image is too large ({actual_size / (1024 * 1024):.1f}MB). Maximum is {max_mb:.0f}MB.",
                field="image",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, content: bytes, extension: str) -> str:
        """
        Detect the real type from the file's header bytes.

        A renamed file (text saved as .png, a PNG saved as .jpg) is rejected
        even when the declared Content-Type claims an image.

        Returns:
            The detected MIME type, e.g. "image/png".

        Raises:
            ValidationError: not a PNG/JPEG, or the content does not match
                the extension
            FileStorageError: libmagic failed to inspect the content
        """
        try:
            detected = magic.from_buffer(content, mime=True)
        except magic.MagicException as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify the image type. Please try again.",
                context={"error": str(e)},
            )

        if detected not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{detected}' is not supported. "
                    "The file must be a valid image (PNG or JPEG)."
                ),
                field="image",
                context={"detected_mime": detected},
            )

        expected = EXTENSION_MIME_TYPES[extension]
        if detected != expected:
            raise ValidationError(
                message=f"The file content ({detected}) does not match its extension '{extension}'.",
                field="image",
                context={"detected_mime": detected, "extension": extension},
            )
        return detected

    def resolve(self, relative_path: str) -> Path:
        """
        Absolute path for a stored relative path.

        Raises:
            ValidationError: the path escapes the storage root (../ tricks)
        """
        full_path = (self.storage_root / relative_path).resolve()
        if self.storage_root != full_path and self.storage_root not in full_path.parents:
            raise ValidationError(message="Invalid file path", context={"path": relative_path})
        return full_path

    def is_default_image(self, relative_path: Optional[str]) -> bool:
        return relative_path == settings.default_user_image

    async def store_file(self, content: bytes, extension: str) -> str:
        """
        Write validated content to disk.

        Returns:
            Path relative to storage root, e.g. "uploads/images/<uuid>.png".

        Raises:
            FileStorageError if the write fails.
        """
        relative_path = f"{self.upload_dir}/{uuid.uuid4()}{extension}"
        absolute_path = self.storage_root / relative_path

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )

        logger.info("File stored: %s (%d bytes)", relative_path, len(content))
        return relative_path

    async def validate_and_store(
        self,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Validation and storage pipeline for one uploaded image.

        Order: extension → declared MIME type → size → detected type → write.
        Returns the relative path to persist on the document.
        """
        ext = self.validate_extension(filename)
        self.validate_content_type(content_type)
        self.validate_size(len(content))
        self.validate_mime_type(content, ext)
        return await self.store_file(content, ext)

    async def cleanup_file(self, file_path: Optional[str]) -> None:
        """
        Best-effort removal of a stored image.

        Accepts a path relative to storage root (as stored on documents) or
        an absolute path. The default profile image is never removed. Missing
        files are ignored; any other failure is logged and swallowed.
        """
        if not file_path or self.is_default_image(file_path):
            return

        try:
            path = Path(file_path) if os.path.isabs(file_path) else self.resolve(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except Exception as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))


# ── Singleton Instance ────────────────────────────────────────────────────
file_service = FileService()
