import os
import re
from dataclasses import dataclass
from urllib.parse import unquote

import requests
import streamlit as st

API_BASE = os.getenv("SNAP_SHIFT_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")
REQUEST_TIMEOUT = float(os.getenv("SNAP_SHIFT_UI_TIMEOUT", "120"))

IMAGE_TYPES = ["jpeg", "jpg", "png", "bmp", "gif", "webp", "tif", "tiff"]


@dataclass
class Download:
    content: bytes | None
    filename: str
    mime: str
    error: str | None = None


def _filename_from_disposition(header: str | None, default: str) -> str:
    if not header:
        return default
    m = re.search(r"filename\*=utf-8''([^;]+)", header, flags=re.IGNORECASE)
    if m:
        return unquote(m.group(1).strip())
    m = re.search(r'filename="([^"]+)"', header)
    if m:
        return m.group(1)
    return default


def _post(path: str, files: list[tuple[str, tuple[str, bytes, str]]], data: dict[str, str], default_name: str) -> Download:
    try:
        resp = requests.post(f"{API_BASE}{path}", files=files, data=data, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        return Download(None, default_name, "", error=f"Failed to connect to API: {e}")
    if resp.status_code != 200:
        # Service errors are plain text
        return Download(None, default_name, "", error=f"{resp.status_code}: {resp.text}")
    filename = _filename_from_disposition(resp.headers.get("Content-Disposition"), default_name)
    mime = resp.headers.get("Content-Type", "application/octet-stream")
    return Download(resp.content, filename, mime)


def _part(field: str, uploaded) -> tuple[str, tuple[str, bytes, str]]:
    return field, (uploaded.name, uploaded.getvalue(), uploaded.type or "application/octet-stream")


def convert_image(uploaded, to_format: str) -> Download:
    stem = os.path.splitext(uploaded.name)[0] or "image"
    return _post(
        "/api/convert/image",
        [_part("file", uploaded)],
        {"toFormat": to_format},
        f"{stem}.{to_format}",
    )


def images_to_pdf(uploaded_files) -> Download:
    return _post(
        "/api/convert/image-to-pdf",
        [_part("files", f) for f in uploaded_files],
        {},
        "converted_document.pdf",
    )


def pdf_to_images(uploaded, fmt: str) -> Download:
    stem = os.path.splitext(uploaded.name)[0] or "document"
    return _post(
        "/api/convert/pdf-to-image",
        [_part("file", uploaded)],
        {"format": fmt},
        f"{stem}.zip",
    )


def _show(result: Download, label: str) -> None:
    if result.error:
        st.error(result.error)
        return
    st.success("Conversion complete!")
    st.download_button(label=label, data=result.content, file_name=result.filename, mime=result.mime)


def main() -> None:
    st.set_page_config(page_title="SnapShift", page_icon="🖼️", layout="centered")
    st.title("🖼️ SnapShift")
    st.caption(f"API base: {API_BASE}")

    image_tab, pdf_tab, pages_tab = st.tabs(["Convert image", "Images to PDF", "PDF to images"])

    with image_tab:
        uploaded = st.file_uploader("Upload an image", type=IMAGE_TYPES, key="image-upload")
        to_format = st.selectbox("Target format", ["png", "jpeg", "jpg", "bmp", "gif"], key="image-format")
        if uploaded and st.button("Convert", type="primary", key="image-go"):
            with st.spinner("Converting..."):
                result = convert_image(uploaded, to_format)
            _show(result, "Download image")
            if not result.error and result.mime.startswith("image/") and to_format != "bmp":
                st.image(result.content)

    with pdf_tab:
        uploaded_files = st.file_uploader(
            "Upload one or more images", type=IMAGE_TYPES, accept_multiple_files=True, key="pdf-upload"
        )
        if uploaded_files and st.button("Create PDF", type="primary", key="pdf-go"):
            with st.spinner("Building PDF..."):
                result = images_to_pdf(uploaded_files)
            _show(result, "Download PDF")

    with pages_tab:
        uploaded = st.file_uploader("Upload a PDF", type=["pdf"], key="pages-upload")
        fmt = st.selectbox("Page image format", ["png", "jpeg", "jpg"], key="pages-format")
        if uploaded and st.button("Rasterize", type="primary", key="pages-go"):
            with st.spinner("Rendering pages..."):
                result = pdf_to_images(uploaded, fmt)
            _show(result, "Download zip")


if __name__ == "__main__":
    main()
