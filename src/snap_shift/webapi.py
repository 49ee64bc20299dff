import logging
import os
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response

from snap_shift import __version__
from snap_shift.conversion import BackendError, ConversionError, ConversionResult, ConversionService, UploadedFile
from snap_shift.conversion.adapters import PillowCodec, PyMuPdfComposer, PyMuPdfRasterizer
from snap_shift.conversion.errors import PayloadTooLargeError

logger = logging.getLogger(__name__)

# Global configuration defaults
CORS_ALLOWED_ORIGIN = os.getenv("CORS_ALLOWED_ORIGIN", "https://snap-shift-552700783517.europe-west1.run.app")
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "50"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CHUNK = 1024 * 1024

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, post-check=0, pre-check=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

SERVICE: ConversionService | None = None


def get_service() -> ConversionService:
    global SERVICE
    if SERVICE is None:
        SERVICE = ConversionService(
            codec=PillowCodec(),
            composer=PyMuPdfComposer(),
            rasterizer=PyMuPdfRasterizer(),
        )
    return SERVICE


def _read_upload(upload: UploadFile | None) -> UploadedFile:
    """Buffer an upload fully in memory, enforcing MAX_UPLOAD_MB."""
    if upload is None:
        return UploadedFile(data=b"")
    buffer = bytearray()
    max_bytes = MAX_UPLOAD_MB * 1024 * 1024
    while True:
        chunk = upload.file.read(CHUNK)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise PayloadTooLargeError(MAX_UPLOAD_MB)
    return UploadedFile(data=bytes(buffer), content_type=upload.content_type, filename=upload.filename)


def _content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


def _to_response(result: ConversionResult) -> Response:
    headers: dict[str, str] = {}
    if result.attachment and result.filename:
        headers["Content-Disposition"] = _content_disposition(result.filename)
    if result.no_cache:
        headers.update(NO_CACHE_HEADERS)
    return Response(content=result.content, media_type=result.media_type, headers=headers)


router = APIRouter(prefix="/api/convert", tags=["convert"])


@router.post("/image")
def convert_image(
    file: UploadFile | None = File(None),
    to_format: str = Form(..., alias="toFormat"),
    service: ConversionService = Depends(get_service),
) -> Response:
    """Convert an uploaded image to another raster format.

    Accepts multipart/form-data with a "file" part and a "toFormat" field
    (jpeg, jpg, png, bmp or gif). Transparency is flattened onto white for
    formats without an alpha channel.
    """
    upload = _read_upload(file)
    return _to_response(service.convert_image(upload.data, to_format))


@router.post("/image-to-pdf")
def image_to_pdf(
    files: list[UploadFile] | None = File(None),
    service: ConversionService = Depends(get_service),
) -> Response:
    """Wrap the uploaded images into a PDF, one image per page.

    Empty parts and parts whose content type is not image/* are skipped.
    """
    uploads = [_read_upload(f) for f in files or []]
    return _to_response(service.compose_pdf(uploads))


@router.post("/pdf-to-image")
def pdf_to_image(
    file: UploadFile | None = File(None),
    output_format: str = Form(..., alias="format"),
    service: ConversionService = Depends(get_service),
) -> Response:
    """Render every page of a PDF at 300 DPI and return the images in a zip."""
    upload = _read_upload(file)
    result = service.rasterize_pdf(upload.data, upload.content_type, output_format, upload.filename)
    return _to_response(result)


async def _conversion_error_handler(request: Request, exc: ConversionError) -> PlainTextResponse:
    if isinstance(exc, BackendError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    else:
        logger.warning("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    return PlainTextResponse(exc.message, status_code=exc.status_code)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> PlainTextResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    if fields:
        message = f"Error: Missing or invalid form field(s): {', '.join(fields)}."
    else:
        message = "Error: Invalid request."
    logger.warning("%s %s rejected (400): %s", request.method, request.url.path, message)
    return PlainTextResponse(message, status_code=400)


async def _unhandled_error_handler(request: Request, exc: Exception) -> PlainTextResponse:
    logger.error("%s %s crashed", request.method, request.url.path, exc_info=exc)
    return PlainTextResponse("Error: Internal server error.", status_code=500)


def create_app() -> FastAPI:
    app = FastAPI(
        title="SnapShift Conversion Service",
        version=os.getenv("SNAP_SHIFT_VERSION", __version__),
        description=(
            "RESTful API for converting images between raster formats, wrapping "
            "images into a PDF and rasterizing PDF pages into a zip of images."
        ),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[CORS_ALLOWED_ORIGIN],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )
    app.add_exception_handler(ConversionError, _conversion_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Basic health check endpoint."""
        return {"status": "ok"}

    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("snap_shift.webapi:app", host=host, port=port, reload=reload, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
