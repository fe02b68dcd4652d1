import io

import pytest
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFPopplerTimeoutError,
    PDFSyntaxError,
)
from PIL import Image

from app.core.errors import RasterizationFailed
from app.services import rasterizer


def _page(size=(60, 80)) -> Image.Image:
    return Image.new("RGB", size, "white")


@pytest.mark.asyncio
async def test_rasterize_renders_first_page_as_png(monkeypatch):
    calls = []

    def fake_convert(content, **kwargs):
        calls.append((content, kwargs))
        return [_page()]

    monkeypatch.setattr(rasterizer, "convert_from_bytes", fake_convert)

    image = await rasterizer.rasterize_first_page(b"%PDF-1.4", dpi=150, timeout_seconds=5)

    assert Image.open(io.BytesIO(image)).format == "PNG"
    content, kwargs = calls[0]
    assert content == b"%PDF-1.4"
    assert kwargs["dpi"] == 150
    assert kwargs["first_page"] == 1
    assert kwargs["last_page"] == 1
    assert kwargs["timeout"] == 5


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, match",
    [
        (PDFInfoNotInstalledError("no poppler"), "not installed"),
        (PDFPopplerTimeoutError("slow"), "timed out"),
        (PDFPageCountError("bad page count"), "Unreadable"),
        (PDFSyntaxError("syntax"), "Unreadable"),
    ],
)
async def test_rasterize_maps_library_errors(monkeypatch, error, match):
    def fake_convert(content, **kwargs):
        raise error

    monkeypatch.setattr(rasterizer, "convert_from_bytes", fake_convert)

    with pytest.raises(RasterizationFailed, match=match):
        await rasterizer.rasterize_first_page(b"%PDF-1.4")


@pytest.mark.asyncio
async def test_rasterize_no_pages(monkeypatch):
    monkeypatch.setattr(rasterizer, "convert_from_bytes", lambda content, **kwargs: [])

    with pytest.raises(RasterizationFailed, match="no pages"):
        await rasterizer.rasterize_first_page(b"%PDF-1.4")


@pytest.mark.asyncio
async def test_rasterize_empty_document():
    with pytest.raises(RasterizationFailed):
        await rasterizer.rasterize_first_page(b"")


def test_pdftoppm_available(monkeypatch):
    monkeypatch.setattr(rasterizer.shutil, "which", lambda name: None)
    assert rasterizer.pdftoppm_available() is False
    monkeypatch.setattr(rasterizer.shutil, "which", lambda name: "/usr/bin/pdftoppm")
    assert rasterizer.pdftoppm_available() is True
