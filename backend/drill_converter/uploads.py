# backend/drill_converter/uploads.py
import os
import uuid
from typing import Iterable

import aiofiles
from fastapi import UploadFile

from .config import ALLOWED_MIME_TYPES

CHUNK_SIZE = 1024 * 1024


class UploadRejected(Exception):
    """Upload failed validation; nothing was recorded."""


def check_mime_type(content_type: str, allowed: Iterable[str] = ALLOWED_MIME_TYPES):
    if content_type not in allowed:
        raise UploadRejected("Invalid file type. Only MP3, WAV, and M4A files are allowed.")


def new_upload_path(upload_dir: str) -> str:
    return os.path.join(upload_dir, uuid.uuid4().hex)


# Save uploaded file in chunks (async), enforcing the size cap as bytes arrive
async def save_upload_file(upload_file: UploadFile, destination: str, max_bytes: int) -> int:
    written = 0
    try:
        async with aiofiles.open(destination, "wb") as out_file:
            while True:
                chunk = await upload_file.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadRejected(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
                await out_file.write(chunk)
    except BaseException:
        if os.path.exists(destination):
            os.remove(destination)
        raise
    finally:
        await upload_file.close()
    return written
