import io
import logging
import zipfile
from contextlib import ExitStack
from pathlib import PurePosixPath
from typing import Sequence

from PIL import Image

from .errors import (
    EmptyUploadError,
    EncodingError,
    InvalidImageError,
    InvalidPdfError,
    NoValidImagesError,
    RasterizeError,
    UnsupportedFormatError,
)
from .formats import (
    IMAGE_MEDIA_PREFIX,
    PDF_MEDIA_TYPE,
    SUPPORTED_IMAGE_FORMATS,
    SUPPORTED_PAGE_FORMATS,
    ZIP_MEDIA_TYPE,
    media_type_for,
    normalize_format,
    supports_alpha,
)
from .interfaces import (
    ConversionResult,
    ImageCodecGateway,
    PdfComposerGateway,
    PdfRasterizerGateway,
    UploadedFile,
)

logger = logging.getLogger(__name__)

RENDER_DPI = 300
PDF_FILENAME = "converted_document.pdf"
DEFAULT_BASE_NAME = "document"


def base_name(filename: str | None) -> str:
    """Strip directories and the last extension from an uploaded filename.

    Names without an extension are kept as-is; empty names and dotfiles
    fall back to ``document``.
    """
    name = PurePosixPath((filename or "").replace("\\", "/")).name.strip()
    stem, dot, _ = name.rpartition(".")
    if dot:
        name = stem
    return name or DEFAULT_BASE_NAME


def flatten_onto_white(image: Image.Image) -> Image.Image:
    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.getchannel("A"))
    return background


def is_image_upload(upload: UploadedFile) -> bool:
    content_type = (upload.content_type or "").strip().lower()
    return not upload.is_empty and content_type.startswith(IMAGE_MEDIA_PREFIX)


class ConversionService:
    """Core domain service for the three conversion operations.

    This service is framework-agnostic and stateless: every call works on
    its own buffers, and the gateways do the actual decoding, encoding and
    PDF work.
    """

    def __init__(
        self,
        codec: ImageCodecGateway,
        composer: PdfComposerGateway,
        rasterizer: PdfRasterizerGateway,
        *,
        render_dpi: int = RENDER_DPI,
    ) -> None:
        self._codec = codec
        self._composer = composer
        self._rasterizer = rasterizer
        self._render_dpi = render_dpi

    def convert_image(self, data: bytes, target_format: str) -> ConversionResult:
        fmt = normalize_format(target_format)
        if fmt not in SUPPORTED_IMAGE_FORMATS:
            raise UnsupportedFormatError(target_format, SUPPORTED_IMAGE_FORMATS)
        if not data:
            raise EmptyUploadError()

        with self._codec.decode(data) as source:
            if supports_alpha(fmt):
                output = self._codec.encode(source, fmt)
            else:
                try:
                    flattened = flatten_onto_white(source)
                except (OSError, ValueError) as exc:
                    raise EncodingError(fmt) from exc
                with flattened:
                    output = self._codec.encode(flattened, fmt)
            logger.info(
                "Converted %s image %dx%d to %s (%d -> %d bytes)",
                source.format or "unknown", source.width, source.height, fmt, len(data), len(output),
            )
        return ConversionResult(content=output, media_type=media_type_for(fmt))

    def compose_pdf(self, files: Sequence[UploadedFile] | None) -> ConversionResult:
        if not files:
            raise EmptyUploadError("Error: Please upload at least one image file.")

        valid: list[UploadedFile] = []
        for position, upload in enumerate(files, start=1):
            if is_image_upload(upload):
                valid.append(upload)
            else:
                logger.info(
                    "Skipping upload #%d (%s): empty or not an image (content-type=%s)",
                    position, upload.filename or "unnamed", upload.content_type,
                )
        if not valid:
            raise NoValidImagesError()

        with ExitStack() as stack:
            images = []
            for upload in valid:
                try:
                    image = self._codec.decode(upload.data)
                except InvalidImageError as exc:
                    raise InvalidImageError(upload.filename) from exc
                images.append(stack.enter_context(image))
            pdf_bytes = self._composer.compose(images)

        logger.info("Composed %d page PDF from %d upload(s)", len(valid), len(files))
        return ConversionResult(
            content=pdf_bytes,
            media_type=PDF_MEDIA_TYPE,
            filename=PDF_FILENAME,
            attachment=True,
            no_cache=True,
        )

    def rasterize_pdf(
        self,
        data: bytes,
        content_type: str | None,
        target_format: str,
        filename: str | None,
    ) -> ConversionResult:
        fmt = normalize_format(target_format)
        if fmt not in SUPPORTED_PAGE_FORMATS:
            raise UnsupportedFormatError(target_format, SUPPORTED_PAGE_FORMATS)
        if not data or content_type != PDF_MEDIA_TYPE:
            raise InvalidPdfError()

        base = base_name(filename)
        page_count = 0
        with io.BytesIO() as buffer:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for page_number, page_image in enumerate(
                    self._rasterizer.render_pages(data, self._render_dpi), start=1
                ):
                    with page_image:
                        try:
                            encoded = self._codec.encode(page_image, fmt)
                        except EncodingError as exc:
                            raise RasterizeError() from exc
                    archive.writestr(f"{base}_page_{page_number}.{fmt}", encoded)
                    page_count = page_number
            archive_bytes = buffer.getvalue()

        logger.info("Rasterized %d page(s) of %s to %s at %d DPI", page_count, base, fmt, self._render_dpi)
        return ConversionResult(
            content=archive_bytes,
            media_type=ZIP_MEDIA_TYPE,
            filename=f"{base}.zip",
            attachment=True,
        )
