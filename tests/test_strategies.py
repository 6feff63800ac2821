# tests/test_strategies.py
"""
Extraction backends and how their failures are classified.

Tests:
  1. Image download (status codes, content types, network errors)
  2. OpenAI vision call and error mapping
  3. Tesseract OCR wrapper
  4. Ollama cleanup stage and the hybrid strategy
  5. Strategy chain selection from settings

Run: python -m pytest tests/test_strategies.py -v
"""

import base64
import io
from types import SimpleNamespace

import httpx
import openai
import pytest
import pytesseract
import requests
from PIL import Image

from menuboard import openai_client
from menuboard.errors import FatalError, TransientError
from menuboard.images import ImageFetcher
from menuboard.ocr import TesseractEngine, _prepare, clean_ocr_text
from menuboard.ollama_client import OllamaCleaner, clean_model_reply
from menuboard.strategies import HybridStrategy, OcrStrategy, VisionModelStrategy, build_strategies

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b"", headers=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.headers = headers or {}
        self.text = text

    def json(self):
        return self._payload


class FakeHttp:
    """requests.Session stand-in answering get/post from queues."""

    def __init__(self, get=(), post=()):
        self.headers = {}
        self.get_replies = list(get)
        self.post_replies = list(post)
        self.posted = []

    def _next(self, queue):
        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def get(self, url, timeout=None):
        return self._next(self.get_replies)

    def post(self, url, json=None, timeout=None):
        self.posted.append((url, json))
        return self._next(self.post_replies)


class FakeCompletions:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def create(self, **kw):
        self.calls.append(kw)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_openai(reply=None, error=None):
    completions = FakeCompletions(reply, error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class StaticFetcher:
    def __init__(self, data=b"\x89PNG fake", ctype="image/png"):
        self.data = data
        self.ctype = ctype
        self.fetched = []

    def fetch(self, image_ref):
        self.fetched.append(image_ref)
        return self.data, self.ctype


def png_bytes(size=(40, 20)):
    buf = io.BytesIO()
    Image.new("RGB", size, "white").save(buf, format="PNG")
    return buf.getvalue()


class TestImageFetcher:

    def test_ok(self):
        http = FakeHttp(get=[FakeResponse(200, content=b"jpegdata", headers={"Content-Type": "image/jpeg; q=1"})])
        assert ImageFetcher(session=http).fetch("//k.kakaocdn.net/a.jpg") == (b"jpegdata", "image/jpeg")

    def test_missing_content_type_defaults_to_jpeg(self):
        http = FakeHttp(get=[FakeResponse(200, content=b"x")])
        assert ImageFetcher(session=http).fetch("https://k.kakaocdn.net/a")[1] == "image/jpeg"

    @pytest.mark.parametrize("status, error", [(503, TransientError), (429, TransientError), (404, FatalError), (403, FatalError)])
    def test_status_mapping(self, status, error):
        http = FakeHttp(get=[FakeResponse(status)])
        with pytest.raises(error):
            ImageFetcher(session=http).fetch("https://k.kakaocdn.net/a.jpg")

    def test_html_is_fatal(self):
        http = FakeHttp(get=[FakeResponse(200, content=b"<html>", headers={"Content-Type": "text/html"})])
        with pytest.raises(FatalError):
            ImageFetcher(session=http).fetch("https://k.kakaocdn.net/a.jpg")

    def test_empty_body_is_fatal(self):
        http = FakeHttp(get=[FakeResponse(200, content=b"", headers={"Content-Type": "image/png"})])
        with pytest.raises(FatalError):
            ImageFetcher(session=http).fetch("https://k.kakaocdn.net/a.png")

    def test_network_errors(self):
        with pytest.raises(TransientError):
            ImageFetcher(session=FakeHttp(get=[requests.Timeout("slow")])).fetch("https://x/a.jpg")
        with pytest.raises(FatalError):
            ImageFetcher(session=FakeHttp(get=[requests.exceptions.InvalidURL("bad")])).fetch("https://x/a.jpg")


class TestOpenAI:

    def test_vision_strategy_sends_data_url(self):
        client, completions = fake_openai(' ["흑미밥", "김치찌개"] ')
        fetcher = StaticFetcher(b"abc", "image/png")
        strat = VisionModelStrategy(client, fetcher, model="gpt-4o-mini", temperature=0.1)

        assert strat.extract("https://k.kakaocdn.net/a.png", "8월 26일 메뉴") == '["흑미밥", "김치찌개"]'
        call = completions.calls[0]
        assert call["model"] == "gpt-4o-mini"
        text_part, image_part = call["messages"][0]["content"]
        assert "8월 26일 메뉴" in text_part["text"]
        assert image_part["image_url"]["url"] == "data:image/png;base64," + base64.b64encode(b"abc").decode()
        assert fetcher.fetched == ["https://k.kakaocdn.net/a.png"]

    def test_empty_reply_is_fatal(self):
        client, _ = fake_openai("   ")
        with pytest.raises(FatalError):
            VisionModelStrategy(client, StaticFetcher()).extract("https://x/a.png")

    def test_rate_limit_is_transient(self):
        error = openai.RateLimitError("slow down", response=httpx.Response(429, request=REQUEST), body=None)
        client, _ = fake_openai(error=error)
        with pytest.raises(TransientError):
            VisionModelStrategy(client, StaticFetcher()).extract("https://x/a.png")

    @pytest.mark.parametrize("error, expected", [
        (openai.APITimeoutError(request=REQUEST), TransientError),
        (openai.APIConnectionError(request=REQUEST), TransientError),
        (openai.BadRequestError("bad", response=httpx.Response(400, request=REQUEST), body=None), FatalError),
        (openai.AuthenticationError("key", response=httpx.Response(401, request=REQUEST), body=None), FatalError),
        (openai.InternalServerError("oops", response=httpx.Response(500, request=REQUEST), body=None), TransientError),
    ])
    def test_classify(self, error, expected):
        assert isinstance(openai_client.classify(error), expected)

    def test_prompt_without_caption(self):
        assert "포스트 제목" not in openai_client.build_prompt(None)
        assert '포스트 제목: "8월 26일 메뉴"' in openai_client.build_prompt("8월 26일 메뉴")

    def test_check_openai(self):
        ok, _ = fake_openai("x")
        down, _ = fake_openai(error=openai.APIConnectionError(request=REQUEST))
        assert openai_client.check_openai(ok, "gpt-4o-mini")
        assert not openai_client.check_openai(down, "gpt-4o-mini")


class TestOcr:

    def test_clean_ocr_text(self):
        assert clean_ocr_text("Ａ　흑미밥   백미밥\n\n  된장국 \n") == "A 흑미밥 백미밥\n된장국"
        assert clean_ocr_text("") == ""

    def test_unreadable_image(self):
        with pytest.raises(FatalError):
            _prepare(b"definitely not an image")

    def test_large_image_downscaled(self):
        img = _prepare(png_bytes((4800, 100)))
        assert img.size == (2400, 50)
        assert img.mode == "L"

    def test_recognize(self, monkeypatch):
        seen = {}

        def fake_image_to_string(img, lang=None, config=None, timeout=0):
            seen.update(lang=lang, config=config)
            return "흑미밥\n\n김치찌개 "

        monkeypatch.setattr(pytesseract, "image_to_string", fake_image_to_string)
        text = OcrStrategy(StaticFetcher(png_bytes()), TesseractEngine(lang="kor")).extract("https://x/a.png")
        assert text == "흑미밥\n김치찌개"
        assert seen["lang"] == "kor"
        assert "--psm 6" in seen["config"]

    @pytest.mark.parametrize("error, expected", [
        (pytesseract.TesseractError(1, "bad lang"), FatalError),
        (pytesseract.TesseractNotFoundError(), FatalError),
        (RuntimeError("Tesseract process timeout"), TransientError),
    ])
    def test_recognize_errors(self, monkeypatch, error, expected):
        def boom(*args, **kw):
            raise error

        monkeypatch.setattr(pytesseract, "image_to_string", boom)
        with pytest.raises(expected):
            TesseractEngine().recognize(png_bytes())


class TestOllama:

    def test_clean_model_reply(self):
        reply = "결과: 흑미밥, 김치찌개\n1. 돈까스\n- 맛있는 메뉴입니다\nrice\n"
        assert clean_model_reply(reply) == ["흑미밥", "김치찌개", "돈까스", "맛있는 메뉴"]

    def test_picks_installed_model(self):
        http = FakeHttp(
            get=[FakeResponse(200, {"models": [{"name": "llama3.1:8b"}]})],
            post=[FakeResponse(200, {"message": {"content": "흑미밥\n김치찌개"}})],
        )
        cleaner = OllamaCleaner(models=("qwen2.5-coder:7b", "llama3.1:8b"), session=http)
        assert cleaner.clean("혹미밥 김치찌게 돈까쓰") == "흑미밥\n김치찌개"
        url, body = http.posted[0]
        assert url == "http://localhost:11434/api/chat"
        assert body["model"] == "llama3.1:8b"
        assert "혹미밥 김치찌게 돈까쓰" in body["messages"][0]["content"]

    def test_short_text_is_fatal(self):
        with pytest.raises(FatalError):
            OllamaCleaner(session=FakeHttp()).clean("밥")

    def test_unreachable_is_transient(self):
        cleaner = OllamaCleaner(session=FakeHttp(get=[requests.ConnectionError("refused")]))
        with pytest.raises(TransientError):
            cleaner.clean("흑미밥 김치찌개 돈까스")
        assert not OllamaCleaner(session=FakeHttp(get=[requests.ConnectionError("refused")])).available()

    def test_empty_reply_is_fatal(self):
        http = FakeHttp(
            get=[FakeResponse(200, {"models": [{"name": "qwen2.5-coder:7b"}]})],
            post=[FakeResponse(200, {"message": {"content": "Sorry, I can't read that."}})],
        )
        with pytest.raises(FatalError):
            OllamaCleaner(session=http).clean("흑미밥 김치찌개 돈까스")

    def test_hybrid_chains_ocr_and_cleanup(self):
        ocr = SimpleNamespace(extract=lambda ref, cap=None: "혹미밥\n김치찌게", available=lambda: True)
        cleaner = SimpleNamespace(clean=lambda text: text.replace("혹", "흑").replace("게", "개"), available=lambda: False)
        hybrid = HybridStrategy(ocr, cleaner)
        assert hybrid.extract("https://x/a.png") == "흑미밥\n김치찌개"
        assert not hybrid.available()


class TestBuildStrategies:

    def names(self, chain):
        return [s.name for s in chain]

    def test_explicit_choices(self, make_settings):
        client, _ = fake_openai("x")
        assert self.names(build_strategies(make_settings(extraction_strategy="ocr"))) == ["ocr"]
        assert self.names(build_strategies(make_settings(extraction_strategy="hybrid"))) == ["hybrid"]
        assert self.names(build_strategies(make_settings(extraction_strategy="vision"), client=client)) == ["vision"]

    def test_auto_with_reachable_vision(self, make_settings):
        client, _ = fake_openai("x")
        chain = build_strategies(make_settings(extraction_strategy="auto"), client=client)
        assert self.names(chain) == ["vision", "ocr"]

    def test_auto_with_unreachable_vision(self, make_settings):
        client, _ = fake_openai(error=openai.APIConnectionError(request=REQUEST))
        chain = build_strategies(make_settings(extraction_strategy="auto"), client=client)
        assert self.names(chain) == ["ocr"]

    def test_auto_without_key(self, make_settings):
        assert self.names(build_strategies(make_settings(extraction_strategy="auto"))) == ["ocr"]
