import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
DEFAULT_EXTENSION = ".jpg"


@dataclass(frozen=True)
class StoredImage:
    url: str
    filename: str
    size: int


def image_extension(filename: Optional[str]) -> str:
    extension = os.path.splitext(filename or "")[1].lower()
    if not extension:
        return DEFAULT_EXTENSION
    if extension not in ALLOWED_EXTENSIONS:
        raise ValidationError("Unsupported image format. Upload PNG, JPG, JPEG, GIF, or WEBP files.")
    return extension


class ImageStore(ABC):
    @abstractmethod
    def save(self, data: bytes, filename: Optional[str] = None) -> StoredImage:
        """Persist the image bytes and return where they are served from."""


class LocalImageStore(ImageStore):
    def __init__(self, directory: str, base_url: str = "/uploads"):
        self.directory = directory
        self.base_url = base_url.rstrip("/")

    def save(self, data: bytes, filename: Optional[str] = None) -> StoredImage:
        stored_name = f"product_{uuid4().hex}{image_extension(filename)}"
        os.makedirs(self.directory, exist_ok=True)
        with open(os.path.join(self.directory, stored_name), "wb") as fh:
            fh.write(data)
        logger.info("Stored upload %s (%d bytes)", stored_name, len(data))
        return StoredImage(url=f"{self.base_url}/{stored_name}", filename=stored_name, size=len(data))
