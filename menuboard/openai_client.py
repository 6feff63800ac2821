# menuboard/openai_client.py
import base64
import logging
from typing import Optional

import openai
from openai import OpenAI

from .errors import ExtractionError, FatalError, TransientError

logger = logging.getLogger("menuboard.openai_client")

# ---------- Prompt ----------

PROMPT = """이 이미지는 한국 구내식당의 메뉴판입니다.{caption_line}

메뉴 항목들만 정확히 추출해서 JSON 배열 형태로 출력해주세요. 다른 설명 없이 JSON 배열만 반환해주세요.
예시: ["흑미밥/백미밥", "김치찌개", "돈까스"]

주의사항:
- 메뉴 이름만 추출하고 설명이나 부가 정보는 제외
- 한국어 음식명 그대로 유지
- 날짜나 요일 정보는 제외
- 조식/중식/석식 구분이 있다면 "조식", "중식", "석식"을 각 구간 앞에 별도 항목으로 넣어주세요"""

TRANSIENT_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)

FATAL_ERRORS = (
    openai.BadRequestError,
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
    openai.UnprocessableEntityError,
)


def make_client(api_key: str, timeout: float = 30) -> OpenAI:
    # retries are the orchestrator's job, not the SDK's
    return OpenAI(api_key=api_key, timeout=timeout, max_retries=0)


def classify(exc: Exception) -> ExtractionError:
    if isinstance(exc, TRANSIENT_ERRORS):
        return TransientError(f"OpenAI transient error: {exc}")
    if isinstance(exc, FATAL_ERRORS):
        return FatalError(f"OpenAI rejected request: {exc}")
    if isinstance(exc, openai.APIStatusError) and exc.status_code >= 500:
        return TransientError(f"OpenAI server error {exc.status_code}: {exc}")
    return FatalError(f"OpenAI call failed: {exc}")


def build_prompt(caption: Optional[str]) -> str:
    caption_line = f' 포스트 제목: "{caption}"' if caption else ""
    return PROMPT.format(caption_line=caption_line)


# ---------- Main entry ----------

def analyze_menu_image(
    client: OpenAI,
    image_bytes: bytes,
    content_type: str,
    model: str,
    temperature: float,
    caption: Optional[str] = None,
    max_tokens: int = 500,
) -> str:
    """
    Send the menu board photo to the chat completions endpoint as a data URL.

    Returns the raw text reply (ideally a JSON array of menu names). Raises
    TransientError / FatalError so the caller can decide whether to retry.
    """
    logger.info("analyze_menu_image called: model=%s bytes=%d caption=%r", model, len(image_bytes), caption)
    data_url = f"data:{content_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"

    try:
        resp = client.chat.completions.create(
            model=model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(caption)},
                        {"type": "image_url", "image_url": {"url": data_url, "detail": "high"}},
                    ],
                },
            ],
            max_tokens=max_tokens,
            temperature=temperature,
        )
    except openai.OpenAIError as e:
        raise classify(e) from e

    content = (resp.choices[0].message.content or "").strip() if resp.choices else ""
    logger.debug("Received response payload length=%d", len(content))
    if not content:
        raise FatalError("OpenAI returned an empty response")
    return content


def check_openai(client: OpenAI, model: str) -> bool:
    """Cheap reachability probe: a one-token completion."""
    try:
        client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": "test"}],
            max_tokens=1,
            temperature=0,
        )
        return True
    except openai.OpenAIError as e:
        logger.warning("OpenAI status check failed: %s", e)
        return False
