from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date
from io import BytesIO
from typing import Callable, NamedTuple

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .errors import RenderError
from .storage import ensure_dir, write_atomic


CANVAS_SIZE = (600, 200)
TEXT_LEFT = 50
NAME_TOP = 20
ISSUER_TOP = 58
DESCRIPTION_TOP = 90
DESCRIPTION_LINE_HEIGHT = 20
DESCRIPTION_MAX_WIDTH = CANVAS_SIZE[0] - 2 * TEXT_LEFT
DATE_TOP = 170
TEXT_FILL = (51, 51, 51, 255)

_FONT_CANDIDATES = {
    "bold": (
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "Arial Bold.ttf",
    ),
    "regular": (
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "Arial.ttf",
    ),
}


@dataclass(frozen=True)
class BadgeDraft:
    """Everything drawn on a badge; the record before artifacts exist."""

    full_name: str
    issuer: str
    key_description: str
    issued_on: date


class RenderedBadge(NamedTuple):
    image_bytes: bytes
    document_bytes: bytes


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> list[str]:
    """Greedily pack words into lines no wider than ``max_width``.

    A word that is wider than ``max_width`` on its own still gets a line to
    itself; words are never split.
    """
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and measure(candidate) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def _load_font(weight: str, size: int):
    for path in _FONT_CANDIDATES[weight]:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    try:
        return ImageFont.load_default(size=size)
    except TypeError:  # Pillow < 10.1 has no sized default font
        return ImageFont.load_default()


def _format_issued_on(value: date) -> str:
    return value.strftime("%d %B %Y").lstrip("0")


def _load_template(template_path: str) -> Image.Image:
    if not template_path or not os.path.isfile(template_path):
        raise RenderError(f"Badge template not found: {template_path!r}")
    resampling = getattr(Image, "Resampling", None)
    resample_filter = resampling.LANCZOS if resampling is not None else Image.LANCZOS
    try:
        with Image.open(template_path) as img:
            return img.convert("RGBA").resize(CANVAS_SIZE, resample_filter)
    except (OSError, UnidentifiedImageError) as exc:
        raise RenderError(f"Badge template unreadable: {template_path!r}") from exc


def render_image(draft: BadgeDraft, template_path: str) -> Image.Image:
    missing = [
        name
        for name in ("full_name", "issuer", "key_description")
        if not (getattr(draft, name) or "").strip()
    ]
    if missing:
        raise RenderError(f"Cannot render badge without {', '.join(missing)}")

    image = _load_template(template_path)
    draw = ImageDraw.Draw(image)

    name_font = _load_font("bold", 24)
    issuer_font = _load_font("regular", 18)
    detail_font = _load_font("regular", 16)

    draw.text((TEXT_LEFT, NAME_TOP), draft.full_name, font=name_font, fill=TEXT_FILL)
    draw.text(
        (TEXT_LEFT, ISSUER_TOP),
        f"Issued by: {draft.issuer}",
        font=issuer_font,
        fill=TEXT_FILL,
    )
    lines = wrap_text(
        draft.key_description,
        DESCRIPTION_MAX_WIDTH,
        lambda text: draw.textlength(text, font=detail_font),
    )
    for index, line in enumerate(lines):
        draw.text(
            (TEXT_LEFT, DESCRIPTION_TOP + index * DESCRIPTION_LINE_HEIGHT),
            line,
            font=detail_font,
            fill=TEXT_FILL,
        )
    draw.text(
        (TEXT_LEFT, DATE_TOP),
        f"Date: {_format_issued_on(draft.issued_on)}",
        font=detail_font,
        fill=TEXT_FILL,
    )
    return image


def image_to_pdf(image: Image.Image) -> bytes:
    width, height = image.size
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=(width, height))
    c.drawImage(ImageReader(image.convert("RGB")), 0, 0, width=width, height=height)
    c.showPage()
    c.save()
    return buf.getvalue()


def render_badge(draft: BadgeDraft, template_path: str) -> RenderedBadge:
    image = render_image(draft, template_path)
    png = BytesIO()
    image.save(png, format="PNG")
    return RenderedBadge(png.getvalue(), image_to_pdf(image))


def make_template(path: str, fill: tuple[int, int, int] = (236, 242, 250)) -> str:
    """Write a plain base template so a fresh checkout can render badges."""
    ensure_dir(os.path.dirname(os.path.abspath(path)))
    image = Image.new("RGBA", CANVAS_SIZE, fill + (255,))
    draw = ImageDraw.Draw(image)
    draw.rectangle(
        (4, 4, CANVAS_SIZE[0] - 5, CANVAS_SIZE[1] - 5), outline=(18, 77, 153, 255), width=4
    )
    buf = BytesIO()
    image.save(buf, format="PNG")
    write_atomic(path, buf.getvalue())
    return path
