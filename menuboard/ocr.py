from __future__ import annotations
import io
import logging
import re
import unicodedata

import pytesseract
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import FatalError, TransientError

logger = logging.getLogger("menuboard.ocr")

_spaces_re = re.compile(r"[ \t ]+")


def _prepare(image_bytes: bytes, max_side: int = 2400) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise FatalError(f"unreadable image: {e}") from e
    img = ImageOps.exif_transpose(img).convert("L")
    if max(img.size) > max_side:
        scale = max_side / max(img.size)
        img = img.resize((int(img.width * scale), int(img.height * scale)), Image.LANCZOS)
    return img


def clean_ocr_text(text: str) -> str:
    """Fold full-width characters, collapse runs of spaces, keep line breaks."""
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text)
    lines = [_spaces_re.sub(" ", ln).strip() for ln in text.splitlines()]
    return "\n".join(ln for ln in lines if ln)


class TesseractEngine:
    def __init__(self, lang: str = "kor+eng", psm: int = 6, timeout: float = 60):
        self.lang = lang
        self.psm = psm
        self.timeout = timeout

    def recognize(self, image_bytes: bytes) -> str:
        img = _prepare(image_bytes)
        config = f"--psm {self.psm} -c preserve_interword_spaces=1"
        try:
            text = pytesseract.image_to_string(img, lang=self.lang, config=config, timeout=self.timeout)
        except pytesseract.TesseractNotFoundError as e:
            raise FatalError("tesseract binary not installed") from e
        except pytesseract.TesseractError as e:
            raise FatalError(f"tesseract failed: {e}") from e
        except RuntimeError as e:
            # pytesseract signals its own timeout as a bare RuntimeError
            raise TransientError(f"tesseract timed out: {e}") from e
        cleaned = clean_ocr_text(text)
        logger.info("OCR produced %d line(s)", cleaned.count("\n") + 1 if cleaned else 0)
        return cleaned

    def available(self) -> bool:
        try:
            pytesseract.get_tesseract_version()
            return True
        except pytesseract.TesseractNotFoundError:
            return False
