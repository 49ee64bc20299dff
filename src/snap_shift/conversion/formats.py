"""Format-support tables shared by the conversion operations.

All tables are immutable and read-only after import.
"""

from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True)
class ImageFormat:
    name: str
    media_type: str
    pillow_format: str
    supports_alpha: bool


_IMAGE_FORMATS = (
    ImageFormat("jpeg", "image/jpeg", "JPEG", supports_alpha=False),
    ImageFormat("jpg", "image/jpeg", "JPEG", supports_alpha=False),
    ImageFormat("png", "image/png", "PNG", supports_alpha=True),
    ImageFormat("bmp", "image/bmp", "BMP", supports_alpha=False),
    ImageFormat("gif", "image/gif", "GIF", supports_alpha=True),
)

IMAGE_FORMATS = MappingProxyType({f.name: f for f in _IMAGE_FORMATS})

# Output formats accepted by the image converter, in the order they are advertised.
SUPPORTED_IMAGE_FORMATS: tuple[str, ...] = tuple(f.name for f in _IMAGE_FORMATS)

# Output formats accepted by the PDF rasterizer.
SUPPORTED_PAGE_FORMATS: tuple[str, ...] = ("png", "jpeg", "jpg")

DEFAULT_MEDIA_TYPE = "application/octet-stream"
PDF_MEDIA_TYPE = "application/pdf"
ZIP_MEDIA_TYPE = "application/zip"
IMAGE_MEDIA_PREFIX = "image/"


def normalize_format(value: str | None) -> str:
    return (value or "").strip().lower()


def media_type_for(fmt: str) -> str:
    spec = IMAGE_FORMATS.get(normalize_format(fmt))
    return spec.media_type if spec else DEFAULT_MEDIA_TYPE


def pillow_format_for(fmt: str) -> str | None:
    spec = IMAGE_FORMATS.get(normalize_format(fmt))
    return spec.pillow_format if spec else None


def supports_alpha(fmt: str) -> bool:
    spec = IMAGE_FORMATS.get(normalize_format(fmt))
    return bool(spec and spec.supports_alpha)
