from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from .config import Settings
from .images import ImageFetcher
from .ocr import TesseractEngine
from .ollama_client import OllamaCleaner
from . import openai_client

logger = logging.getLogger("menuboard.strategies")


class ExtractionStrategy(ABC):
    """
    One way of turning a menu image into raw text.

    Implementations raise TransientError for failures worth retrying and
    FatalError for everything else; they enforce their own per-call timeouts.
    """

    name: str = "base"

    @abstractmethod
    def extract(self, image_ref: str, caption_text: Optional[str] = None) -> str:
        raise NotImplementedError

    def available(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class VisionModelStrategy(ExtractionStrategy):
    name = "vision"

    def __init__(self, client, fetcher: ImageFetcher, model: str = "gpt-4o-mini", temperature: float = 0.1):
        self.client = client
        self.fetcher = fetcher
        self.model = model
        self.temperature = temperature

    def extract(self, image_ref: str, caption_text: Optional[str] = None) -> str:
        image_bytes, content_type = self.fetcher.fetch(image_ref)
        return openai_client.analyze_menu_image(
            self.client, image_bytes, content_type,
            model=self.model, temperature=self.temperature, caption=caption_text,
        )

    def available(self) -> bool:
        return openai_client.check_openai(self.client, self.model)


class OcrStrategy(ExtractionStrategy):
    name = "ocr"

    def __init__(self, fetcher: ImageFetcher, engine: TesseractEngine):
        self.fetcher = fetcher
        self.engine = engine

    def extract(self, image_ref: str, caption_text: Optional[str] = None) -> str:
        image_bytes, _ = self.fetcher.fetch(image_ref)
        return self.engine.recognize(image_bytes)

    def available(self) -> bool:
        return self.engine.available()


class HybridStrategy(ExtractionStrategy):
    """OCR first, then a local text model corrects the recognition errors. Retried as one unit."""

    name = "hybrid"

    def __init__(self, ocr: OcrStrategy, cleaner: OllamaCleaner):
        self.ocr = ocr
        self.cleaner = cleaner

    def extract(self, image_ref: str, caption_text: Optional[str] = None) -> str:
        text = self.ocr.extract(image_ref, caption_text)
        return self.cleaner.clean(text)

    def available(self) -> bool:
        return self.ocr.available() and self.cleaner.available()


def build_strategies(s: Settings, fetcher: Optional[ImageFetcher] = None, client=None) -> List[ExtractionStrategy]:
    """
    Turn EXTRACTION_STRATEGY into an ordered chain.

    "auto" means vision first with OCR as fallback when the vision backend
    answers, OCR alone otherwise.
    """
    fetcher = fetcher or ImageFetcher(timeout=s.request_timeout)
    ocr = OcrStrategy(fetcher, TesseractEngine(lang=s.tesseract_lang))

    def vision() -> VisionModelStrategy:
        c = client or openai_client.make_client(s.openai_api_key, timeout=s.request_timeout)
        return VisionModelStrategy(c, fetcher, model=s.openai_model, temperature=s.temperature)

    if s.extraction_strategy == "vision":
        return [vision()]
    if s.extraction_strategy == "ocr":
        return [ocr]
    if s.extraction_strategy == "hybrid":
        return [HybridStrategy(ocr, OllamaCleaner(host=s.ollama_host, models=s.ollama_models))]

    if s.openai_api_key or client is not None:
        v = vision()
        if v.available():
            logger.info("Vision backend reachable; chain = vision -> ocr")
            return [v, ocr]
        logger.warning("Vision backend unreachable; falling back to OCR only")
    else:
        logger.warning("OPENAI_API_KEY not set; using OCR only")
    return [ocr]
