"""
Tests for the conversion HTTP endpoints.

Covers status codes, plain-text error bodies, download headers, CORS and
the mapping of backend failures to 500 responses.
"""

import io
import logging
import zipfile

import fitz  # PyMuPDF
import pytest

from conftest import make_image_bytes, make_pdf_bytes, open_image
from snap_shift import webapi
from snap_shift.conversion import ConversionService
from snap_shift.conversion.adapters import PillowCodec, PyMuPdfComposer, PyMuPdfRasterizer
from snap_shift.conversion.errors import ComposeError, EncodingError


class FailingCodec(PillowCodec):
    def encode(self, image, target_format):
        raise EncodingError(target_format) from OSError("encoder exploded")


class FailingComposer(PyMuPdfComposer):
    def compose(self, images):
        raise ComposeError() from RuntimeError("disk full")


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


class TestImageEndpoint:
    def test_converts_png_to_jpeg(self, client):
        resp = client.post(
            "/api/convert/image",
            files={"file": ("photo.png", make_image_bytes("PNG", size=(20, 10)), "image/png")},
            data={"toFormat": "jpeg"},
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"
        image = open_image(resp.content)
        assert image.format == "JPEG"
        assert image.size == (20, 10)

    def test_cmyk_jpeg_to_gif(self, client):
        cmyk_jpeg = make_image_bytes("JPEG", size=(24, 12), mode="CMYK", color=(0, 255, 255, 0))
        resp = client.post(
            "/api/convert/image",
            files={"file": ("print.jpg", cmyk_jpeg, "image/jpeg")},
            data={"toFormat": "gif"},
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/gif"
        assert open_image(resp.content).size == (24, 12)

    def test_bmp_media_type(self, client):
        resp = client.post(
            "/api/convert/image",
            files={"file": ("photo.gif", make_image_bytes("GIF"), "image/gif")},
            data={"toFormat": "BMP"},
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/bmp"

    def test_unsupported_format_is_400_plain_text(self, client):
        resp = client.post(
            "/api/convert/image",
            files={"file": ("photo.png", make_image_bytes(), "image/png")},
            data={"toFormat": "tiff"},
        )

        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.text == "Error: Unsupported output format 'tiff'. Supported formats are: jpeg, jpg, png, bmp, gif"

    def test_empty_file_is_400(self, client):
        resp = client.post(
            "/api/convert/image",
            files={"file": ("empty.png", b"", "image/png")},
            data={"toFormat": "png"},
        )
        assert resp.status_code == 400
        assert "please upload a file" in resp.text.lower()

    def test_missing_file_is_400(self, client):
        resp = client.post("/api/convert/image", data={"toFormat": "png"}, files={"other": ("x", b"x", "text/plain")})
        assert resp.status_code == 400
        assert "please upload a file" in resp.text.lower()

    def test_invalid_image_is_400(self, client):
        resp = client.post(
            "/api/convert/image",
            files={"file": ("notes.txt", b"hello world", "text/plain")},
            data={"toFormat": "png"},
        )
        assert resp.status_code == 400
        assert "not a valid or supported image" in resp.text

    def test_missing_to_format_is_400_plain_text(self, client):
        resp = client.post(
            "/api/convert/image",
            files={"file": ("photo.png", make_image_bytes(), "image/png")},
        )
        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("text/plain")
        assert "toFormat" in resp.text

    def test_encoder_failure_is_500_and_logged(self, client_with_service, caplog):
        svc = ConversionService(FailingCodec(), PyMuPdfComposer(), PyMuPdfRasterizer())
        client = client_with_service(svc)

        with caplog.at_level(logging.ERROR, logger="snap_shift.webapi"):
            resp = client.post(
                "/api/convert/image",
                files={"file": ("photo.png", make_image_bytes(), "image/png")},
                data={"toFormat": "png"},
            )

        assert resp.status_code == 500
        assert resp.text == "Error: Could not write to format 'png'."
        assert "Traceback" not in resp.text
        assert any(r.exc_info for r in caplog.records)

    def test_oversized_upload_is_413(self, client, monkeypatch):
        monkeypatch.setattr(webapi, "MAX_UPLOAD_MB", 0)
        resp = client.post(
            "/api/convert/image",
            files={"file": ("photo.png", make_image_bytes(), "image/png")},
            data={"toFormat": "png"},
        )
        assert resp.status_code == 413
        assert resp.text == "Error: Upload exceeds 0 MB."


class TestImageToPdfEndpoint:
    def _files(self, *entries):
        return [("files", entry) for entry in entries]

    def test_returns_pdf_download(self, client):
        files = self._files(
            ("a.png", make_image_bytes("PNG"), "image/png"),
            ("b.jpg", make_image_bytes("JPEG"), "image/jpeg"),
            ("c.bmp", make_image_bytes("BMP"), "image/bmp"),
        )

        resp = client.post("/api/convert/image-to-pdf", files=files)

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["content-disposition"] == 'attachment; filename="converted_document.pdf"'
        assert "no-cache" in resp.headers["cache-control"]
        assert "no-store" in resp.headers["cache-control"]
        assert resp.headers["pragma"] == "no-cache"
        with fitz.open(stream=resp.content, filetype="pdf") as doc:
            assert doc.page_count == 3

    def test_empty_file_among_images_is_skipped(self, client):
        files = self._files(
            ("a.png", make_image_bytes("PNG"), "image/png"),
            ("empty.png", b"", "image/png"),
            ("b.png", make_image_bytes("PNG"), "image/png"),
            ("c.png", make_image_bytes("PNG"), "image/png"),
        )

        resp = client.post("/api/convert/image-to-pdf", files=files)

        assert resp.status_code == 200
        with fitz.open(stream=resp.content, filetype="pdf") as doc:
            assert doc.page_count == 3

    def test_no_files_is_400(self, client):
        resp = client.post("/api/convert/image-to-pdf", data={"unrelated": "x"})
        assert resp.status_code == 400
        assert "at least one image" in resp.text

    def test_only_invalid_files_is_400(self, client):
        files = self._files(("notes.txt", b"hello", "text/plain"), ("empty.png", b"", "image/png"))
        resp = client.post("/api/convert/image-to-pdf", files=files)
        assert resp.status_code == 400
        assert resp.text == "Error: No valid images were supplied."

    def test_compose_failure_is_500(self, client_with_service):
        svc = ConversionService(PillowCodec(), FailingComposer(), PyMuPdfRasterizer())
        client = client_with_service(svc)
        resp = client.post(
            "/api/convert/image-to-pdf",
            files=self._files(("a.png", make_image_bytes("PNG"), "image/png")),
        )
        assert resp.status_code == 500
        assert resp.text == "Error during PDF conversion."


class TestPdfToImageEndpoint:
    def test_returns_zip_of_pages(self, client):
        resp = client.post(
            "/api/convert/pdf-to-image",
            files={"file": ("annual report.pdf", make_pdf_bytes(pages=2), "application/pdf")},
            data={"format": "png"},
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/zip"
        assert resp.headers["content-disposition"] == 'attachment; filename*=utf-8\'\'annual%20report.zip'
        with zipfile.ZipFile(io.BytesIO(resp.content)) as archive:
            assert archive.namelist() == ["annual report_page_1.png", "annual report_page_2.png"]

    def test_plain_filename_disposition(self, client):
        resp = client.post(
            "/api/convert/pdf-to-image",
            files={"file": ("slides.pdf", make_pdf_bytes(pages=1), "application/pdf")},
            data={"format": "jpg"},
        )
        assert resp.status_code == 200
        assert resp.headers["content-disposition"] == 'attachment; filename="slides.zip"'

    def test_unsupported_format_is_400(self, client):
        resp = client.post(
            "/api/convert/pdf-to-image",
            files={"file": ("slides.pdf", make_pdf_bytes(pages=1), "application/pdf")},
            data={"format": "bmp"},
        )
        assert resp.status_code == 400
        assert resp.text == "Error: Unsupported output format 'bmp'. Supported formats are: png, jpeg, jpg"

    def test_non_pdf_content_type_is_400(self, client):
        resp = client.post(
            "/api/convert/pdf-to-image",
            files={"file": ("photo.png", make_image_bytes(), "image/png")},
            data={"format": "png"},
        )
        assert resp.status_code == 400
        assert resp.text == "Error: Please upload a valid PDF file."

    def test_corrupt_pdf_is_500_without_partial_zip(self, client):
        resp = client.post(
            "/api/convert/pdf-to-image",
            files={"file": ("broken.pdf", b"garbage bytes that are not a pdf", "application/pdf")},
            data={"format": "png"},
        )
        assert resp.status_code == 500
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.text == "Error during PDF to Image conversion."


class TestCors:
    def test_configured_origin_is_allowed(self, client):
        resp = client.options(
            "/api/convert/image",
            headers={"Origin": webapi.CORS_ALLOWED_ORIGIN, "Access-Control-Request-Method": "POST"},
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == webapi.CORS_ALLOWED_ORIGIN

    def test_other_origin_is_not_allowed(self, client):
        resp = client.get("/health", headers={"Origin": "https://evil.example.com"})
        assert "access-control-allow-origin" not in resp.headers


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("report.zip", 'attachment; filename="report.zip"'),
        ("résumé.zip", "attachment; filename*=utf-8''r%C3%A9sum%C3%A9.zip"),
    ],
)
def test_content_disposition(filename, expected):
    assert webapi._content_disposition(filename) == expected
