from dataclasses import dataclass
from typing import Iterator, Protocol, Sequence

from PIL import Image


class ImageCodecGateway(Protocol):
    def decode(self, data: bytes) -> Image.Image:
        """Decode raw bytes into a fully loaded pixel buffer.

        Raises InvalidImageError when the bytes are not a recognizable image.
        """

    def encode(self, image: Image.Image, target_format: str) -> bytes:
        """Serialize a pixel buffer in the given format.

        Raises EncodingError when the backend cannot write the format.
        """


class PdfComposerGateway(Protocol):
    def compose(self, images: Sequence[Image.Image]) -> bytes:
        """Place each image on its own page, in order, and return the PDF bytes."""


class PdfRasterizerGateway(Protocol):
    def render_pages(self, data: bytes, dpi: int) -> Iterator[Image.Image]:
        """Yield one RGB pixel buffer per page, in page order."""


@dataclass(frozen=True)
class UploadedFile:
    data: bytes
    content_type: str | None = None
    filename: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.data


@dataclass(frozen=True)
class ConversionResult:
    content: bytes
    media_type: str
    filename: str | None = None
    attachment: bool = False
    no_cache: bool = False
