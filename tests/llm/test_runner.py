"""Tests for the model provider adapter."""

from __future__ import annotations

import io
import json
from urllib.error import HTTPError, URLError

import pytest

from shadowsync.config import LLMConfig
from shadowsync.errors import ConfigurationError, GenerationError
from shadowsync.llm import LLMRunner


class FakeResponse:
    def __init__(self, payload=None, lines=None):
        self._payload = payload
        self._lines = lines or []

    def read(self):
        return json.dumps(self._payload).encode("utf-8")

    def __iter__(self):
        return iter(line.encode("utf-8") for line in self._lines)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch) -> None:
    for key in LLMRunner.ENV_MODEL_KEYS + LLMRunner.ENV_BASE_URL_KEYS + LLMRunner.ENV_API_KEY_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_llm_runner_constructs_request() -> None:
    captured = {}

    def fake_runner(request):
        captured["prompt"] = request.prompt
        captured["system"] = request.system
        captured["model"] = request.model
        captured["temperature"] = request.temperature
        captured["max_tokens"] = request.max_tokens
        captured["stream"] = request.stream
        return "response"

    runner = LLMRunner(
        model="custom-model",
        temperature=0.15,
        max_tokens=256,
        runner=fake_runner,
    )
    result = runner.generate("system message", "Hello world")

    assert result == "response"
    assert captured == {
        "prompt": "Hello world",
        "system": "system message",
        "model": "custom-model",
        "temperature": 0.15,
        "max_tokens": 256,
        "stream": False,
    }


def test_llm_runner_http_posts_payload(monkeypatch) -> None:
    captured = {}

    def fake_urlopen(request, timeout=None):
        captured["url"] = request.full_url
        captured["headers"] = {k.lower(): v for k, v in request.header_items()}
        captured["payload"] = json.loads(request.data.decode("utf-8"))
        captured["timeout"] = timeout
        return FakeResponse({"choices": [{"message": {"content": "fn main() {}"}}]})

    monkeypatch.setattr("shadowsync.llm.runner.urlopen", fake_urlopen)

    runner = LLMRunner(
        model="qwen2.5-coder",
        base_url="http://localhost:11434/v1/",
        api_key="local-key",
        temperature=0.05,
        max_tokens=128,
        request_timeout=25.0,
    )
    result = runner.generate("Write Rust.", "+ print hello")

    assert result == "fn main() {}"
    assert captured["url"] == "http://localhost:11434/v1/chat/completions"
    assert captured["headers"]["authorization"] == "Bearer local-key"
    payload = captured["payload"]
    assert payload["model"] == "qwen2.5-coder"
    assert payload["messages"] == [
        {"role": "system", "content": "Write Rust."},
        {"role": "user", "content": "+ print hello"},
    ]
    assert payload["temperature"] == 0.05
    assert payload["max_tokens"] == 128
    assert "stream" not in payload
    assert captured["timeout"] == 25.0


def test_llm_runner_streams_server_sent_events(monkeypatch) -> None:
    captured = {}
    lines = [
        ": keep-alive\n",
        'data: {"choices": [{"delta": {"role": "assistant"}}]}\n',
        'data: {"choices": [{"delta": {"content": "def "}}]}\n',
        "\n",
        'data: {"choices": [{"delta": {"content": "main(): pass"}}]}\n',
        "data: [DONE]\n",
        'data: {"choices": [{"delta": {"content": "ignored"}}]}\n',
    ]

    def fake_urlopen(request, timeout=None):
        captured["payload"] = json.loads(request.data.decode("utf-8"))
        return FakeResponse(lines=lines)

    monkeypatch.setattr("shadowsync.llm.runner.urlopen", fake_urlopen)

    runner = LLMRunner(model="m", base_url="http://127.0.0.1:8080/v1", api_key=None)
    fragments = list(runner.stream("sys", "user"))

    assert fragments == ["def ", "main(): pass"]
    assert captured["payload"]["stream"] is True


def test_llm_runner_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("OPENROUTER_MODEL", "env-model")
    monkeypatch.setenv("SHADOWSYNC_LLM_API_KEY", "env-key")

    runner = LLMRunner()

    assert runner.model == "env-model"
    assert runner.api_key == "env-key"
    assert runner.base_url == LLMRunner.DEFAULT_BASE_URL


def test_from_config_prefers_file_settings(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    config = LLMConfig(model="cfg-model", base_url="http://localhost:1234/v1/", temperature=0.3)

    runner = LLMRunner.from_config(config)

    assert runner.model == "cfg-model"
    assert runner.base_url == "http://localhost:1234/v1"
    assert runner.api_key == "env-key"
    assert runner.temperature == 0.3


def test_missing_model_is_configuration_error() -> None:
    runner = LLMRunner(runner=lambda request: "unused")

    with pytest.raises(ConfigurationError):
        runner.generate("s", "u")


def test_missing_api_key_for_remote_provider(monkeypatch) -> None:
    def fail_urlopen(request, timeout=None):  # pragma: no cover - must not be reached
        raise AssertionError("no request expected")

    monkeypatch.setattr("shadowsync.llm.runner.urlopen", fail_urlopen)
    runner = LLMRunner(model="m")

    with pytest.raises(ConfigurationError, match="API key"):
        runner.generate("s", "u")


def test_local_provider_does_not_need_api_key() -> None:
    runner = LLMRunner(model="m", base_url="http://localhost:11434/v1")

    runner.ensure_configured()


def test_http_error_becomes_generation_error(monkeypatch) -> None:
    def fake_urlopen(request, timeout=None):
        raise HTTPError(
            request.full_url, 429, "Too Many Requests", {}, io.BytesIO(b"rate limited")
        )

    monkeypatch.setattr("shadowsync.llm.runner.urlopen", fake_urlopen)
    runner = LLMRunner(model="m", api_key="k")

    with pytest.raises(GenerationError, match="429: rate limited"):
        runner.generate("s", "u")


def test_url_error_becomes_generation_error(monkeypatch) -> None:
    def fake_urlopen(request, timeout=None):
        raise URLError("connection refused")

    monkeypatch.setattr("shadowsync.llm.runner.urlopen", fake_urlopen)
    runner = LLMRunner(model="m", api_key="k")

    with pytest.raises(GenerationError, match="connection refused"):
        list(runner.stream("s", "u"))


def test_provider_error_payload_and_content_filter(monkeypatch) -> None:
    responses = [
        {"error": {"message": "model not found"}},
        {"choices": [{"finish_reason": "content_filter", "message": {"content": ""}}]},
    ]

    def fake_urlopen(request, timeout=None):
        return FakeResponse(responses.pop(0))

    monkeypatch.setattr("shadowsync.llm.runner.urlopen", fake_urlopen)
    runner = LLMRunner(model="m", api_key="k")

    with pytest.raises(GenerationError, match="model not found"):
        runner.generate("s", "u")
    with pytest.raises(GenerationError, match="content filter"):
        runner.generate("s", "u")


def test_empty_content_is_not_an_error(monkeypatch) -> None:
    monkeypatch.setattr(
        "shadowsync.llm.runner.urlopen",
        lambda request, timeout=None: FakeResponse({"choices": [{"message": {"content": ""}}]}),
    )
    runner = LLMRunner(model="m", api_key="k")

    assert runner.generate("s", "u") == ""


def test_custom_runner_may_stream_iterables() -> None:
    runner = LLMRunner(model="m", runner=lambda request: iter(["a", "b"]))

    assert list(runner.stream("s", "u")) == ["a", "b"]
    assert runner.generate("s", "u") == "ab"
