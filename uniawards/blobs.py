import os
import secrets
import time
from pathlib import Path

from werkzeug.utils import secure_filename

from uniawards.errors import ValidationError
from uniawards.logger import get_logger

log = get_logger("blobs")

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
MAX_IMAGE_BYTES = 8 * 1024 * 1024  # 8 MB


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


class ImageStore:
    """Nominee photos on local disk, grouped by poll and served under /uploads"""

    def __init__(self, upload_dir: str, public_base_url: str):
        self.root = Path(upload_dir).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, poll_id: str, filename: str, data: bytes) -> str:
        """Store an image under the poll's folder and return its public URL"""
        filename = secure_filename(filename or "")
        if not allowed_file(filename):
            raise ValidationError("Only png, jpg, jpeg, gif or webp images are accepted")
        if not data:
            raise ValidationError("Image file is empty")
        if len(data) > MAX_IMAGE_BYTES:
            raise ValidationError("Image is larger than 8 MB")

        poll_dir = secure_filename(poll_id)
        if not poll_dir:
            raise ValidationError("Invalid poll id")
        ext = filename.rsplit(".", 1)[1].lower()
        name = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"

        target_dir = self.root / poll_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        with open(path, "wb") as f:
            f.write(data)

        log.info("Stored nominee image %s (%d bytes)", os.path.join(poll_dir, name), len(data))
        return f"{self.public_base_url}/uploads/{poll_dir}/{name}"

    def discard(self, url: str) -> bool:
        """Delete an image saved by this store; other URLs are left alone"""
        prefix = f"{self.public_base_url}/uploads/"
        if not url or not url.startswith(prefix):
            return False
        path = (self.root / url[len(prefix):]).resolve()
        if self.root not in path.parents or not path.is_file():
            return False
        path.unlink()
        log.info("Removed nominee image %s", path.relative_to(self.root))
        return True
