"""
Mailroom Backend — Attachment Store
=====================================

What:  Validates, stores, reads and deletes uploaded files on the local
       filesystem.
Why:   Template attachments and profile images share one storage layer with
       one set of security checks.
How:   Validates MIME type and size against a per-resource policy, writes
       into date-organized directories under a generated unique name, and
       hands back an `AttachmentRef` that the record stores.
Who:   Called by the resource services and the auth service.

Security Model:
    1. MIME allow-list per resource (documents for templates, images for avatars)
    2. Extension must belong to the declared MIME type
    3. Size cap (5MB default) checked on the declared and the actual size
    4. Images only: header bytes must match the declared type (python-magic)
    5. Generated filename: no user input reaches the filesystem path
    6. Exclusive create: an existing file is never overwritten
    7. `resolve()` refuses locations that escape the storage root

Directory Structure:
    uploads/
    └── 2024/
        └── 01/
            └── 15/
                ├── 1705312800123-482913375.pdf
                └── 1705312801456-019283746.png
"""

import logging
import os
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Tuple

import aiofiles
import magic

from app.config import Settings, settings
from app.exceptions import FileStorageError, NotFoundError, ValidationError
from app.models.base import AttachmentRef

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
# What: MIME type → extensions that may carry it
MIME_EXTENSIONS: Dict[str, FrozenSet[str]] = {
    "image/jpeg": frozenset({".jpg", ".jpeg"}),
    "image/png": frozenset({".png"}),
    "image/gif": frozenset({".gif"}),
    "application/pdf": frozenset({".pdf"}),
    "application/msword": frozenset({".doc"}),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": frozenset({".docx"}),
    "text/plain": frozenset({".txt", ".text"}),
}


@dataclass(frozen=True)
class AttachmentPolicy:
    """Which MIME types a resource accepts; the name shows up in error messages."""

    name: str
    allowed_mime_types: FrozenSet[str]
    description: str
    # Compare the declared type with libmagic's reading of the header bytes
    sniff_content: bool = False


IMAGE_POLICY = AttachmentPolicy(
    name="image",
    allowed_mime_types=frozenset({"image/jpeg", "image/png", "image/gif"}),
    description="Only JPEG, PNG and GIF images are allowed.",
    sniff_content=True,
)

DOCUMENT_POLICY = AttachmentPolicy(
    name="document",
    allowed_mime_types=frozenset(MIME_EXTENSIONS),
    description="Only images, PDFs, DOC, DOCX and TXT files are allowed.",
)

# Attempts at finding a free generated name before giving up
_MAX_NAME_ATTEMPTS = 5


@dataclass(frozen=True)
class IncomingFile:
    """An upload already read into memory, detached from the HTTP layer."""

    content: bytes
    filename: str
    mimetype: Optional[str]
    content_length: Optional[int] = None


class AttachmentStore:
    """
    Filesystem-backed binary storage keyed by generated unique filenames.

    Lifecycle of an uploaded file:
        1. Route reads the multipart upload → service calls validate_and_store()
        2. MIME allow-list, extension and size checks (nothing written yet)
        3. Bytes written with exclusive create under YYYY/MM/DD/<generated>
        4. AttachmentRef (original filename, relative location, MIME) returned
        5. On replace/delete: delete() removes the old file, best-effort
    """

    def __init__(self, storage_root: Optional[str] = None, max_file_size: Optional[int] = None):
        """
        Args:
            storage_root: Override the default storage path (used in tests).
            max_file_size: Override the configured upload size limit.
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.max_file_size = max_file_size or settings.max_file_size
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("AttachmentStore initialized with storage_root=%s", self.storage_root)

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "AttachmentStore":
        return cls(storage_root=app_settings.storage_root, max_file_size=app_settings.max_file_size)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_mime_type(self, mimetype: Optional[str], policy: AttachmentPolicy) -> str:
        """Reject MIME types outside the policy's allow-list."""
        normalized = (mimetype or "").split(";")[0].strip().lower()
        if normalized not in policy.allowed_mime_types:
            raise ValidationError(
                message=f"Invalid file type. {policy.description}",
                field="file",
                context={
                    "mimetype": normalized or None,
                    "allowed": sorted(policy.allowed_mime_types),
                },
            )
        return normalized

    def validate_extension(self, filename: str, mimetype: str) -> str:
        """
        The extension must be one the declared MIME type is known by.

        Returns: Normalized extension (lowercase with dot).
        """
        ext = Path(filename).suffix.lower()
        if ext not in MIME_EXTENSIONS.get(mimetype, frozenset()):
            raise ValidationError(
                message=f"File extension '{ext or '(none)'}' does not match file type '{mimetype}'.",
                field="file",
                context={"extension": ext, "mimetype": mimetype},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Check the declared size first (cheap), then the actual byte count.

        Raises:
            ValidationError for empty files and files over the limit
        """
        max_mb = self.max_file_size / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(message="Uploaded file is empty.", field="file")

        if content_length and content_length > self.max_file_size:
            raise ValidationError(
                message=f"File is too large. Maximum size is {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size > self.max_file_size:
            raise ValidationError(
                message=(
                    f"File is too large ({actual_size / (1024 * 1024):.1f}MB). "
                    f"Maximum size is {max_mb:.0f}MB."
                ),
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_content(self, content: bytes, mimetype: str) -> None:
        """
        Detect the real type from the file header with libmagic.

        A .png whose bytes are a script or a PDF is rejected even though the
        declared MIME type and extension agree.
        """
        detected = magic.from_buffer(content[:2048], mime=True)
        if detected != mimetype:
            logger.warning("Upload content mismatch: declared=%s detected=%s", mimetype, detected)
            raise ValidationError(
                message="File content does not match its declared type.",
                field="file",
                context={"mimetype": mimetype, "detected": detected},
            )

    def validate(
        self,
        content: bytes,
        filename: str,
        mimetype: Optional[str],
        policy: AttachmentPolicy,
        content_length: Optional[int] = None,
    ) -> Tuple[str, str]:
        """
        Run every ingress check; nothing touches disk or database before this.

        Returns: (normalized MIME type, normalized extension)
        """
        normalized = self.validate_mime_type(mimetype, policy)
        ext = self.validate_extension(filename, normalized)
        self.validate_size(content_length, len(content))
        if policy.sniff_content:
            self.validate_content(content, normalized)
        return normalized, ext

    # ── Storage ───────────────────────────────────────────────────────────

    def _generate_location(self, extension: str) -> Tuple[Path, str]:
        """
        Creates YYYY/MM/DD/<epoch-ms>-<9 random digits><ext>.

        Returns: (absolute_path, relative_location)
        """
        now = datetime.now(timezone.utc)
        date_dir = now.strftime("%Y/%m/%d")
        unique_name = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9):09d}{extension}"
        relative = f"{date_dir}/{unique_name}"
        return self.storage_root / relative, relative

    async def store(self, content: bytes, original_name: str, mimetype: str) -> AttachmentRef:
        """
        Write bytes under a fresh generated name.

        Opened with mode "xb" so a name collision raises instead of
        overwriting; a new name is generated in that case.

        Raises:
            FileStorageError if the directory or file cannot be written.
        """
        extension = Path(original_name).suffix.lower()
        for _ in range(_MAX_NAME_ATTEMPTS):
            absolute_path, relative = self._generate_location(extension)
            try:
                absolute_path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(absolute_path, "xb") as f:
                    await f.write(content)
            except FileExistsError:
                logger.debug("Generated name already taken, retrying: %s", relative)
                continue
            except OSError as e:
                logger.error("Failed to store file at %s: %s", absolute_path, str(e))
                raise FileStorageError(
                    message="Failed to save uploaded file. Please try again.",
                    context={"path": str(absolute_path), "os_error": str(e)},
                )

            logger.info("File stored: %s (%d bytes, %s)", relative, len(content), mimetype)
            return AttachmentRef(filename=original_name, location=relative, mimetype=mimetype)

        raise FileStorageError(
            message="Failed to save uploaded file. Please try again.",
            context={"reason": "could not generate a unique filename"},
        )

    async def validate_and_store(
        self,
        content: bytes,
        filename: str,
        mimetype: Optional[str],
        policy: AttachmentPolicy,
        content_length: Optional[int] = None,
    ) -> AttachmentRef:
        """Validate against `policy`, then store. Validation failures write nothing."""
        normalized, _ = self.validate(content, filename, mimetype, policy, content_length)
        return await self.store(content, filename, normalized)

    # ── Access ────────────────────────────────────────────────────────────

    def _absolute(self, location: str) -> Path:
        path = (self.storage_root / location).resolve()
        if path != self.storage_root and self.storage_root not in path.parents:
            raise ValidationError(message="Invalid file path", context={"location": location})
        return path

    def resolve(self, location: str) -> Path:
        """
        Absolute path of a stored file, for streaming responses.

        Raises:
            ValidationError if the location escapes the storage root
            NotFoundError if the file is gone
        """
        path = self._absolute(location)
        if not path.is_file():
            raise NotFoundError(resource="file", message="File not found")
        return path

    async def read(self, location: str) -> bytes:
        path = self.resolve(location)
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def delete(self, location: Optional[str]) -> bool:
        """
        Remove a stored file. Best-effort cleanup.

        Returns True when a file was removed. A missing file, a bad location
        or an OS error is logged and reported as False; callers never fail
        their primary operation because of it.
        """
        if not location:
            return False
        try:
            path = self._absolute(location)
            if not path.exists():
                logger.warning("Attachment already gone, nothing to delete: %s", location)
                return False
            os.remove(path)
            logger.info("Deleted attachment: %s", location)
            return True
        except (OSError, ValidationError) as e:
            logger.warning("Failed to delete attachment %s: %s", location, str(e))
            return False
