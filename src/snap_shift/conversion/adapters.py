import io
import logging
from typing import Iterator, Sequence

from PIL import Image, UnidentifiedImageError

from .errors import ComposeError, EncodingError, InvalidImageError, RasterizeError
from .formats import pillow_format_for
from .interfaces import ImageCodecGateway, PdfComposerGateway, PdfRasterizerGateway

logger = logging.getLogger(__name__)

# A4 portrait in PDF points
A4_WIDTH = 595.0
A4_HEIGHT = 842.0
PAGE_MARGIN = 20.0

# Modes each Pillow writer accepts without conversion
_WRITABLE_MODES = {
    "JPEG": {"L", "RGB", "CMYK"},
    "PNG": {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"},
    "BMP": {"1", "L", "P", "RGB", "RGBA"},
    "GIF": {"1", "L", "P", "RGB", "RGBA"},
}


class PillowCodec(ImageCodecGateway):
    def decode(self, data: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(data))
            # Force the full decode so truncated files fail here, not at encode time.
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, EOFError, ValueError) as exc:
            raise InvalidImageError() from exc
        return image

    def encode(self, image: Image.Image, target_format: str) -> bytes:
        pillow_format = pillow_format_for(target_format)
        if pillow_format is None:
            raise EncodingError(target_format)
        buffer = io.BytesIO()
        try:
            self._writable(image, pillow_format).save(buffer, format=pillow_format)
        except (KeyError, OSError, ValueError) as exc:
            raise EncodingError(target_format) from exc
        return buffer.getvalue()

    @staticmethod
    def _writable(image: Image.Image, pillow_format: str) -> Image.Image:
        modes = _WRITABLE_MODES.get(pillow_format)
        if modes is None or image.mode in modes:
            return image
        has_alpha = "A" in image.getbands() or "transparency" in image.info
        if has_alpha and "RGBA" in modes:
            return image.convert("RGBA")
        return image.convert("RGB")


class PyMuPdfComposer(PdfComposerGateway):
    """Lay out images one per page with PyMuPDF.

    Each image is scaled to fit the page inside the margins, keeping its
    aspect ratio. Images are embedded losslessly as PNG.
    """

    def __init__(
        self,
        *,
        page_width: float = A4_WIDTH,
        page_height: float = A4_HEIGHT,
        margin: float = PAGE_MARGIN,
    ) -> None:
        self._page_width = page_width
        self._page_height = page_height
        self._margin = margin

    def compose(self, images: Sequence[Image.Image]) -> bytes:
        import fitz  # PyMuPDF

        try:
            with fitz.open() as doc:
                for image in images:
                    page = doc.new_page(width=self._page_width, height=self._page_height)
                    area = fitz.Rect(
                        self._margin,
                        self._margin,
                        self._page_width - self._margin,
                        self._page_height - self._margin,
                    )
                    page.insert_image(area, stream=self._to_png(image), keep_proportion=True)
                return doc.tobytes(garbage=3, deflate=True)
        except (RuntimeError, ValueError, OSError) as exc:
            raise ComposeError() from exc

    @staticmethod
    def _to_png(image: Image.Image) -> bytes:
        if image.mode not in ("1", "L", "LA", "RGB", "RGBA"):
            image = image.convert("RGBA" if "A" in image.getbands() or "transparency" in image.info else "RGB")
        with io.BytesIO() as buffer:
            image.save(buffer, format="PNG")
            return buffer.getvalue()


class PyMuPdfRasterizer(PdfRasterizerGateway):
    def render_pages(self, data: bytes, dpi: int) -> Iterator[Image.Image]:
        import fitz  # PyMuPDF

        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (RuntimeError, ValueError) as exc:
            raise RasterizeError() from exc
        with doc:
            logger.debug("Rendering %d page(s) at %d DPI", doc.page_count, dpi)
            for index in range(doc.page_count):
                try:
                    pix = doc.load_page(index).get_pixmap(dpi=dpi, alpha=False)
                    page_image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
                except (RuntimeError, ValueError) as exc:
                    raise RasterizeError() from exc
                yield page_image
