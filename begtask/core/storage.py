import os
import shutil
import logging
import uuid

from fastapi import HTTPException, UploadFile

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
PUBLIC_PREFIX = "/static"

logger = logging.getLogger(__name__)


def save_image(file: UploadFile, bucket: str) -> str:
    """Store an uploaded image under UPLOAD_DIR/<bucket>/ and return its public URL."""
    if not str(file.content_type).startswith("image/"):
        raise HTTPException(status_code=400, detail="Only image uploads are supported.")

    directory = os.path.join(UPLOAD_DIR, bucket)
    os.makedirs(directory, exist_ok=True)

    extension = os.path.splitext(file.filename or "")[1].lower()
    filename = f"{uuid.uuid4().hex}{extension}"
    file_path = os.path.join(directory, filename)

    with open(file_path, "wb") as buffer:
        shutil.copyfileobj(file.file, buffer)

    logger.info(f"Stored upload '{file.filename}' as {bucket}/{filename}")
    return f"{PUBLIC_PREFIX}/{bucket}/{filename}"


def remove_file(public_url: str) -> bool:
    """Delete a previously stored file. Unknown URLs are ignored."""
    if not public_url.startswith(PUBLIC_PREFIX + "/"):
        return False
    relative = public_url[len(PUBLIC_PREFIX) + 1 :]
    file_path = os.path.normpath(os.path.join(UPLOAD_DIR, relative))
    if not file_path.startswith(os.path.normpath(UPLOAD_DIR) + os.sep):
        return False
    if os.path.exists(file_path):
        os.remove(file_path)
        return True
    return False
