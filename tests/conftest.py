# tests/conftest.py
import pytest

from menuboard.config import Settings


@pytest.fixture
def make_settings(tmp_path):
    """Settings with offline-friendly defaults; keyword overrides win."""

    def _make(**overrides) -> Settings:
        values = dict(
            channel_url="https://pf.kakao.com/_test/posts",
            image_signature="kakaocdn",
            openai_api_key=None,
            openai_model="gpt-4o-mini",
            temperature=0.1,
            extraction_strategy="ocr",
            tesseract_lang="kor+eng",
            ollama_host="http://localhost:11434",
            ollama_models=("qwen2.5-coder:7b", "llama3.1:8b"),
            max_attempts=3,
            backoff_base=1.0,
            backoff_cap=10.0,
            post_delay=0.0,
            settle_seconds=0.0,
            page_timeout=5,
            request_timeout=5,
            caption_max_len=100,
            tie_break="first",
            storage_backend="local",
            github_token=None,
            github_owner=None,
            github_repo=None,
            github_branch="main",
            storage_prefix="data/menu_",
            storage_dir=str(tmp_path / "store"),
            chrome_path=None,
        )
        values.update(overrides)
        return Settings(**values)

    return _make
