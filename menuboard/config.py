from dataclasses import dataclass
import os
from pathlib import Path
from typing import Optional, Tuple
from dotenv import load_dotenv, find_dotenv

STRATEGIES = ("auto", "vision", "ocr", "hybrid")
STORAGE_BACKENDS = ("github", "local")

DEFAULT_OLLAMA_MODELS = "qwen2.5-coder:7b,llama3.1:8b,gemma3:4b,gemma3:1b"


@dataclass(frozen=True)
class Settings:
    channel_url: str
    image_signature: str
    openai_api_key: Optional[str]
    openai_model: str
    temperature: float
    extraction_strategy: str
    tesseract_lang: str
    ollama_host: str
    ollama_models: Tuple[str, ...]
    max_attempts: int
    backoff_base: float
    backoff_cap: float
    post_delay: float
    settle_seconds: float
    page_timeout: int
    request_timeout: int
    caption_max_len: int
    tie_break: str
    storage_backend: str
    github_token: Optional[str]
    github_owner: Optional[str]
    github_repo: Optional[str]
    github_branch: str
    storage_prefix: str
    storage_dir: str
    chrome_path: Optional[str]


def load_settings() -> Settings:
    load_dotenv(find_dotenv(filename=".env", usecwd=True))
    s = Settings(
        channel_url = os.getenv("CHANNEL_URL", "https://pf.kakao.com/_axkixdn/posts"),
        image_signature = os.getenv("IMAGE_SIGNATURE", "kakaocdn"),
        openai_api_key = os.getenv("OPENAI_API_KEY") or None,
        openai_model = os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        temperature = float(os.getenv("TEMPERATURE", "0.1")),
        extraction_strategy = os.getenv("EXTRACTION_STRATEGY", "auto").strip().lower(),
        tesseract_lang = os.getenv("TESSERACT_LANG", "kor+eng"),
        ollama_host = os.getenv("OLLAMA_HOST", "http://localhost:11434"),
        ollama_models = tuple(
            m.strip() for m in os.getenv("OLLAMA_MODELS", DEFAULT_OLLAMA_MODELS).split(",") if m.strip()
        ),
        max_attempts = int(os.getenv("MAX_ATTEMPTS", "3")),
        backoff_base = float(os.getenv("BACKOFF_BASE", "1.0")),
        backoff_cap = float(os.getenv("BACKOFF_CAP", "10.0")),
        post_delay = float(os.getenv("POST_DELAY", "2.0")),
        settle_seconds = float(os.getenv("SETTLE_SECONDS", "5.0")),
        page_timeout = int(os.getenv("PAGE_TIMEOUT", "30")),
        request_timeout = int(os.getenv("REQUEST_TIMEOUT", "30")),
        caption_max_len = int(os.getenv("CAPTION_MAX_LEN", "100")),
        tie_break = os.getenv("TIE_BREAK", "first").strip().lower(),
        storage_backend = os.getenv("STORAGE_BACKEND", "github").strip().lower(),
        github_token = os.getenv("GITHUB_TOKEN") or None,
        github_owner = os.getenv("GITHUB_OWNER") or None,
        github_repo = os.getenv("GITHUB_REPO") or None,
        github_branch = os.getenv("GITHUB_BRANCH", "main"),
        storage_prefix = os.getenv("STORAGE_PREFIX", "data/menu_"),
        storage_dir = os.getenv("STORAGE_DIR", "./data-store"),
        chrome_path = os.getenv("CHROME_PATH") or None,
    )
    if s.extraction_strategy not in STRATEGIES:
        raise RuntimeError(
            f"EXTRACTION_STRATEGY must be one of {', '.join(STRATEGIES)} (got {s.extraction_strategy!r})"
        )
    if s.storage_backend not in STORAGE_BACKENDS:
        raise RuntimeError(
            f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)} (got {s.storage_backend!r})"
        )
    if s.tie_break not in ("first", "last"):
        raise RuntimeError(f"TIE_BREAK must be 'first' or 'last' (got {s.tie_break!r})")
    if s.max_attempts < 1:
        raise RuntimeError("MAX_ATTEMPTS must be at least 1")
    if s.storage_backend == "local":
        Path(s.storage_dir).mkdir(parents=True, exist_ok=True)
    return s


def require_settings(s: Settings, for_run: bool = False) -> None:
    """Raise RuntimeError naming every variable the requested command still needs."""
    missing = []
    if for_run and s.extraction_strategy == "vision" and not s.openai_api_key:
        missing.append("OPENAI_API_KEY")
    if s.storage_backend == "github":
        if not s.github_owner: missing.append("GITHUB_OWNER")
        if not s.github_repo: missing.append("GITHUB_REPO")
        if for_run and not s.github_token: missing.append("GITHUB_TOKEN")
    if missing:
        raise RuntimeError(f"Missing required env vars: {', '.join(missing)}")
