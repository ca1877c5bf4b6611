"""
Shared fixtures: the FastAPI test client and in-memory sample files.
"""
import io
import os

import pytest
from docx import Document
from fastapi.testclient import TestClient
from PIL import Image
from reportlab.pdfgen import canvas

from fileconv.main import app


@pytest.fixture(scope="session")
def client():
    """FastAPI test client for synchronous tests."""
    with TestClient(app) as test_client:
        yield test_client


def make_png(width: int = 64, height: int = 48, mode: str = "RGB", noise: bool = False) -> bytes:
    if noise:
        img = Image.frombytes(mode, (width, height), os.urandom(width * height * len(mode)))
    else:
        color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
        img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_pdf(lines) -> bytes:
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf)
    y = 750
    for line in lines:
        pdf.drawString(72, y, line)
        y -= 18
    pdf.showPage()
    pdf.save()
    return buf.getvalue()


def make_docx(paragraphs) -> bytes:
    doc = Document()
    for p in paragraphs:
        doc.add_paragraph(p)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def pdf_bytes():
    return make_pdf(["Quarterly report", "Revenue grew in every region"])


@pytest.fixture
def docx_bytes():
    return make_docx(["Meeting notes", "Ship the release on Friday"])


SVG_SAMPLE = (
    b'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 120 80">'
    b'<rect x="10" y="10" width="100" height="60" fill="#3366cc" stroke-width="4"/></svg>'
)


@pytest.fixture
def svg_bytes():
    return SVG_SAMPLE
