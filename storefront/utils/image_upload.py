import os
import uuid
from io import BytesIO

from fastapi import UploadFile, HTTPException
from PIL import Image
from pydantic import ValidationError
from storefront.core.config import settings
from storefront.schemas.image import ImageUploadValidation
import structlog

logger = structlog.get_logger()

MAX_IMAGE_PIXELS = 50_000_000


def validate_image_upload(file: UploadFile) -> tuple[bytes, str]:
    """Validate image upload and return raw bytes plus normalized extension."""
    filename = getattr(file, "filename", "") or ""
    max_size = settings.MAX_UPLOAD_SIZE
    file.file.seek(0)
    try:
        data = file.file.read(max_size + 1)
        try:
            validated = ImageUploadValidation.model_validate(
                {
                    "filename": filename,
                    "content_type": getattr(file, "content_type", None),
                    "data": data,
                    "max_size": max_size,
                    "allowed_extensions": set(settings.ALLOWED_EXTENSIONS),
                }
            )
        except ValidationError as exc:
            error_message = exc.errors()[0].get("msg", "Invalid image file")
            error_message = error_message.removeprefix("Value error, ")
            raise HTTPException(status_code=400, detail=error_message) from exc

        try:
            img = Image.open(BytesIO(validated.data))
            img.verify()  # will raise if broken
            width, height = img.size
        except Exception as exc:
            logger.warning("invalid_image_upload", filename=filename, error=str(exc))
            raise HTTPException(status_code=400, detail="Invalid image file") from exc

        # Prevent decompression bomb by limiting pixel count
        if width * height > MAX_IMAGE_PIXELS:
            raise HTTPException(status_code=400, detail="Image too large")

        return validated.data, validated.detected_extension or ""
    finally:
        file.file.seek(0)


def _store(data: bytes, extension: str, directory: str) -> str:
    os.makedirs(directory, exist_ok=True)

    # Never trust client filename
    unique_filename = f"{uuid.uuid4()}.{extension}"
    file_path = os.path.join(directory, unique_filename)
    with open(file_path, "wb") as out:
        out.write(data)
    return file_path


def save_product_image(file: UploadFile) -> str:
    """Save a catalog image under the public static directory and return its URL path."""
    data, extension = validate_image_upload(file)
    file_path = _store(data, extension, settings.PRODUCT_UPLOAD_DIR)
    return "/" + file_path.replace(os.sep, "/").lstrip("/")


def save_payment_proof(file: UploadFile) -> str:
    """Save a payment screenshot in the private proof directory.

    Returns the stored filename only; proofs are streamed to admins through
    an authenticated endpoint and never exposed as static files.
    """
    data, extension = validate_image_upload(file)
    file_path = _store(data, extension, settings.PROOF_UPLOAD_DIR)
    return os.path.basename(file_path)


def resolve_payment_proof(filename: str) -> str | None:
    if not filename or os.path.basename(filename) != filename:
        return None
    path = os.path.join(settings.PROOF_UPLOAD_DIR, filename)
    return path if os.path.exists(path) else None


def delete_uploaded_file(path: str):
    """Delete an uploaded file from the filesystem"""
    try:
        local_path = path if os.path.exists(path) else path.lstrip("/")
        if os.path.exists(local_path):
            os.remove(local_path)
    except OSError:
        logger.exception("upload_delete_failed", path=path)
