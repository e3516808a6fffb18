import logging
import os
import shutil
import time
import uuid
from typing import Optional

from fastapi import UploadFile

import config

logger = logging.getLogger(__name__)


def ensure_upload_dir() -> str:
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    return config.UPLOAD_DIR


def save_upload(file: Optional[UploadFile]) -> Optional[str]:
    """Store an uploaded file under UPLOAD_DIR and return its filename."""
    if file is None or not file.filename:
        return None
    ext = os.path.splitext(file.filename)[1].lower()
    filename = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"
    path = os.path.join(ensure_upload_dir(), filename)
    with open(path, "wb") as out:
        shutil.copyfileobj(file.file, out)
    logger.info(f"Stored upload {file.filename!r} as {filename}")
    return filename


def discard_upload(filename: Optional[str]) -> None:
    """Remove a stored upload that ended up unused."""
    if not filename:
        return
    path = os.path.join(config.UPLOAD_DIR, filename)
    if os.path.exists(path):
        os.remove(path)
        logger.info(f"Discarded unused upload {filename}")
