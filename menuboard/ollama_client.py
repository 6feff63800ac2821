from __future__ import annotations
import logging
import re
from typing import Optional, Sequence, List

import requests

from .errors import FatalError, TransientError

logger = logging.getLogger("menuboard.ollama_client")

CLEANUP_PROMPT = """다음 OCR 텍스트에서 메뉴명만 추출하고 오타를 수정해주세요:

{ocr_text}

일반적인 OCR 오타 수정 예시:
- "혹미밥" → "흑미밥"
- "7|볶습" → "기볶음"
- "롯난이" → "못난이"
- "틀깨" → "들깨"

정확한 메뉴명만 한 줄에 하나씩 출력해주세요. 설명이나 추가 텍스트는 포함하지 마세요."""

# Chatter local models like to wrap around the answer.
UNWANTED = [
    re.compile(r"^[^:]{0,20}:\s*"),             # "결과:", "수정된 메뉴:"
    re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*"),     # bullets / numbering
    re.compile(r"입니다|됩니다|있습니다|합니다"),
    re.compile(r"구내식당|메뉴판|오늘의"),
]
_hangul_re = re.compile(r"[가-힣]")


def clean_model_reply(reply: str) -> List[str]:
    """Split a free-form model reply into candidate menu names (Hangul only, 2..49 chars)."""
    out: List[str] = []
    for chunk in re.split(r"[\n,]+", reply or ""):
        s = chunk.strip()
        for rx in UNWANTED:
            s = rx.sub("", s).strip()
        if 1 < len(s) < 50 and _hangul_re.search(s):
            out.append(s)
    return out


class OllamaCleaner:
    """Second stage of the hybrid strategy: a local LLM fixes OCR typos."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        models: Sequence[str] = ("qwen2.5-coder:7b",),
        session: Optional[requests.Session] = None,
        timeout: float = 120,
        min_chars: int = 10,
    ):
        self.host = host.rstrip("/")
        self.models = tuple(models)
        self.session = session or requests.Session()
        self.timeout = timeout
        self.min_chars = min_chars
        self._model: Optional[str] = None

    def _get(self, path: str):
        try:
            resp = self.session.get(f"{self.host}{path}", timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientError(f"Ollama unreachable at {self.host}: {e}") from e
        if resp.status_code >= 500:
            raise TransientError(f"Ollama HTTP {resp.status_code}")
        if resp.status_code != 200:
            raise FatalError(f"Ollama HTTP {resp.status_code}: {resp.text[:200]}")
        return resp.json()

    def installed_models(self) -> List[str]:
        return [m.get("name", "") for m in self._get("/api/tags").get("models", [])]

    def select_model(self) -> str:
        if self._model:
            return self._model
        available = self.installed_models()
        for preferred in self.models:
            family = preferred.split(":")[0]
            if any(family in name for name in available):
                self._model = preferred
                break
        else:
            logger.warning("No preferred Ollama model installed (have %s); trying %s", available, self.models[0])
            self._model = self.models[0]
        return self._model

    def available(self) -> bool:
        try:
            self.installed_models()
            return True
        except (TransientError, FatalError, ValueError):
            return False

    def clean(self, ocr_text: str) -> str:
        if not ocr_text or len(ocr_text.strip()) < self.min_chars:
            raise FatalError("OCR text too short to clean up")
        model = self.select_model()
        body = {
            "model": model,
            "messages": [{"role": "user", "content": CLEANUP_PROMPT.format(ocr_text=ocr_text)}],
            "stream": False,
            "options": {"temperature": 0.1, "top_p": 0.9, "repeat_penalty": 1.1, "num_predict": 200},
        }
        logger.info("Cleaning OCR text with %s (%d chars)", model, len(ocr_text))
        try:
            resp = self.session.post(f"{self.host}/api/chat", json=body, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientError(f"Ollama chat failed: {e}") from e
        if resp.status_code >= 500 or resp.status_code == 429:
            raise TransientError(f"Ollama HTTP {resp.status_code}")
        if resp.status_code != 200:
            raise FatalError(f"Ollama HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            content = resp.json().get("message", {}).get("content", "")
        except ValueError as e:
            raise FatalError("Ollama returned non-JSON body") from e
        items = clean_model_reply(content)
        if not items:
            raise FatalError("Ollama reply held no menu names")
        return "\n".join(items)
