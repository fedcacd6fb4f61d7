from io import BytesIO
from typing import Optional, Set

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, field_validator, model_validator

# Pillow format name -> (stored extension, accepted filename extensions, MIME type)
UPLOAD_FORMATS = {
    "PNG": ("png", {"png"}, "image/png"),
    "JPEG": ("jpg", {"jpg", "jpeg"}, "image/jpeg"),
}


def detect_image_format(data: bytes) -> Optional[str]:
    try:
        with Image.open(BytesIO(data)) as image:
            return image.format
    except (UnidentifiedImageError, OSError):
        return None


class ImageUploadValidation(BaseModel):
    """Checks an uploaded product image or payment screenshot before it is stored."""

    filename: str
    content_type: Optional[str] = None
    data: bytes
    max_size: int
    allowed_extensions: Set[str]
    detected_extension: Optional[str] = None

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def normalize_extensions(cls, value):
        return {str(ext).lower().lstrip(".") for ext in value}

    @field_validator("content_type")
    @classmethod
    def normalize_content_type(cls, value):
        return value.split(";", 1)[0].strip().lower() if value else None

    @model_validator(mode="after")
    def validate_image(self):
        if not self.data:
            raise ValueError("Uploaded image is empty")
        if len(self.data) > self.max_size:
            raise ValueError(f"Image must be smaller than {self.max_size / (1024 * 1024):g} MB")

        name_extension = self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""
        if name_extension not in self.allowed_extensions:
            raise ValueError("Only PNG and JPEG images are accepted")

        upload_format = UPLOAD_FORMATS.get(detect_image_format(self.data) or "")
        if upload_format is None:
            raise ValueError("File is not a PNG or JPEG image")

        stored_extension, name_extensions, mime_type = upload_format
        if name_extension not in name_extensions:
            raise ValueError("File extension does not match the image content")
        if self.content_type and self.content_type != mime_type:
            raise ValueError("Declared content type does not match the image content")

        self.detected_extension = stored_extension
        return self
