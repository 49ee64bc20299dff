import io

import fitz  # PyMuPDF
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from snap_shift.conversion import ConversionService
from snap_shift.conversion.adapters import PillowCodec, PyMuPdfComposer, PyMuPdfRasterizer
from snap_shift.webapi import create_app, get_service


def make_image_bytes(
    fmt: str = "PNG",
    size: tuple[int, int] = (40, 30),
    mode: str = "RGB",
    color: tuple[int, ...] = (200, 30, 30),
) -> bytes:
    with Image.new(mode, size, color) as image, io.BytesIO() as buffer:
        image.save(buffer, format=fmt)
        return buffer.getvalue()


def make_pdf_bytes(pages: int = 2, size: tuple[float, float] = (200, 100)) -> bytes:
    with fitz.open() as doc:
        for n in range(pages):
            page = doc.new_page(width=size[0], height=size[1])
            page.insert_text((20, 50), f"Page {n + 1}")
        return doc.tobytes()


def open_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


@pytest.fixture
def service() -> ConversionService:
    return ConversionService(
        codec=PillowCodec(),
        composer=PyMuPdfComposer(),
        rasterizer=PyMuPdfRasterizer(),
    )


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    """Test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def client_with_service(app):
    """Build a test client whose endpoints use the given service."""

    def _build(svc: ConversionService) -> TestClient:
        app.dependency_overrides[get_service] = lambda: svc
        return TestClient(app)

    yield _build
    app.dependency_overrides.clear()
