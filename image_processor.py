"""Inline image payloads: the request-envelope element plus validation and downscaling."""
import base64
import binascii
import importlib
import io

from PIL import Image, ImageOps, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field

# Preprocessors applied to every image before it is sent inline
PREPROCESSORS = ["resize"]

# Output encoding per source MIME type; anything else is re-encoded as JPEG
_FORMATS: dict[str, str] = {
    "image/png":  "PNG",
    "image/webp": "WEBP",
}


class InlineImage(BaseModel):
    """One base64 payload sent alongside the prompt. Serialises as {data, mimeType}."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    data:      str
    mime_type: str = Field(default="image/jpeg", alias="mimeType")

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> "InlineImage":
        return cls(data=base64.b64encode(raw).decode("ascii"), mime_type=mime_type)

    @classmethod
    def from_data_url(cls, data_url: str) -> "InlineImage":
        """Build from a browser data URL ("data:image/png;base64,....")."""
        header, _, payload = data_url.partition(",")
        if not payload or not header.startswith("data:"):
            raise ValueError("Not a base64 data URL.")
        mime_type = header[5:].split(";", 1)[0] or "application/octet-stream"
        return cls(data=payload, mime_type=mime_type)

    def raw_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Inline payload is not valid base64: {e}") from e

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


def open_image(raw: bytes) -> Image.Image:
    """Verify *raw* is a readable image and return it upright, in RGB or RGBA."""
    try:
        checked = Image.open(io.BytesIO(raw))
        checked.verify()  # raises on corrupt / non-image data
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError("The payload does not appear to be a valid image.") from e

    # verify() leaves the image unusable, so reopen
    image = Image.open(io.BytesIO(raw))
    image = ImageOps.exif_transpose(image)
    return image.convert("RGBA" if image.mode in ("RGBA", "LA", "P") else "RGB")


def encode_image(image: Image.Image, mime_type: str) -> tuple[bytes, str]:
    fmt = _FORMATS.get(mime_type.lower(), "JPEG")
    if fmt == "JPEG":
        image     = image.convert("RGB")
        mime_type = "image/jpeg"
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue(), mime_type


def prepare_image(image: InlineImage) -> InlineImage:
    """
    Run an image payload through the preprocessor pipeline.

    Non-image payloads (e.g. application/pdf) are returned unchanged.
    Raises ValueError when an image payload cannot be decoded.
    """
    if not image.is_image:
        return image

    picture = open_image(image.raw_bytes())
    for name in PREPROCESSORS:
        mod     = importlib.import_module(f"preprocessors.{name}")
        picture = mod.process(picture)

    raw, mime_type = encode_image(picture, image.mime_type)
    return InlineImage.from_bytes(raw, mime_type)
