"""
api/images.py -- Product image persistence (transport-side collaborator).

The catalog never touches files. The upload route wraps the uploaded bytes in
an ImagePayload, this module writes them under the static images folder, and
the route hands the resulting (public URL, local path) pair to
ProductLedger.set_image(), which stores both verbatim.

File naming: <product_id><uuid4 hex><original extension>, so two uploads for
the same product never collide and a stale file with the same name is
replaced rather than appended to.
"""

from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

# Extensions accepted for product images. Anything else is rejected before
# touching the filesystem.
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

PUBLIC_PREFIX = "/ProductsImages"


@dataclass
class ImagePayload:
    """An uploaded image: the client's file name and a readable byte stream."""

    filename: str
    stream: BinaryIO

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()


def save_product_image(payload: ImagePayload, product_id: int, images_dir: str, base_url: str) -> tuple[str, str]:
    """Write the image to images_dir and return (public_url, local_path).

    Raises ValueError for a file extension outside ALLOWED_EXTENSIONS.
    """
    if payload.extension not in ALLOWED_EXTENSIONS:
        raise ValueError(f"Unsupported image type '{payload.extension or payload.filename}'")

    folder = Path(images_dir)
    folder.mkdir(parents=True, exist_ok=True)
    file_name = f"{product_id}{uuid.uuid4().hex}{payload.extension}"
    target = folder / file_name
    if target.exists():
        target.unlink()
    with target.open("wb") as fh:
        shutil.copyfileobj(payload.stream, fh)

    public_url = f"{base_url.rstrip('/')}{PUBLIC_PREFIX}/{file_name}"
    return public_url, str(target)
