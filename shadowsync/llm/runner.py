"""Adapter around OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import ipaddress
import json
import os
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Sequence, Union
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from ..config import LLMConfig
from ..errors import ConfigurationError, GenerationError
from ..logging import get_logger

_AUTO_BASE_URL = object()
_AUTO_API_KEY = object()

RunnerResult = Union[str, Iterable[str]]


@dataclass
class LLMRequest:
    """Represents a single generation request."""

    prompt: str
    system: Optional[str]
    model: str
    temperature: Optional[float]
    max_tokens: Optional[int]
    base_url: Optional[str]
    api_key: Optional[str]
    request_timeout: Optional[float]
    stream: bool = False


class LLMRunner:
    """Sends system/user prompts to the configured model provider."""

    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
    ENV_MODEL_KEYS = ("SHADOWSYNC_LLM_MODEL", "OPENROUTER_MODEL", "OPENAI_MODEL")
    ENV_BASE_URL_KEYS = (
        "SHADOWSYNC_LLM_BASE_URL",
        "OPENROUTER_BASE_URL",
        "OPENAI_BASE_URL",
    )
    ENV_API_KEY_KEYS = (
        "SHADOWSYNC_LLM_API_KEY",
        "OPENROUTER_API_KEY",
        "OPENAI_API_KEY",
    )

    def __init__(
        self,
        model: str | None = None,
        *,
        base_url: str | None | object = _AUTO_BASE_URL,
        api_key: str | None | object = _AUTO_API_KEY,
        temperature: Optional[float] = 0.2,
        max_tokens: Optional[int] = None,
        request_timeout: Optional[float] = 120.0,
        runner: Callable[[LLMRequest], RunnerResult] | None = None,
    ) -> None:
        self.model = self._resolve_model(model)
        self.base_url = self._resolve_base_url(base_url)
        self.api_key = self._resolve_api_key(api_key)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self._custom_runner = runner
        self.logger = get_logger("llm")

    @classmethod
    def from_config(cls, config: LLMConfig | None) -> "LLMRunner":
        config = config or LLMConfig()
        kwargs: dict[str, object] = {}
        if config.base_url:
            kwargs["base_url"] = config.base_url
        if config.api_key:
            kwargs["api_key"] = config.api_key
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        if config.request_timeout is not None:
            kwargs["request_timeout"] = config.request_timeout
        return cls(config.model, max_tokens=config.max_tokens, **kwargs)  # type: ignore[arg-type]

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Return the whole model response for the prompts."""
        request = self._build_request(system_prompt, user_prompt, stream=False)
        if self._custom_runner is not None:
            result = self._custom_runner(request)
            return result if isinstance(result, str) else "".join(result)
        return self._http_runner(request)

    def stream(self, system_prompt: str, user_prompt: str) -> Iterator[str]:
        """Yield response fragments as the provider streams them."""
        request = self._build_request(system_prompt, user_prompt, stream=True)
        if self._custom_runner is not None:
            result = self._custom_runner(request)
            if isinstance(result, str):
                yield result
            else:
                yield from result
            return
        yield from self._http_stream(request)

    def ensure_configured(self) -> None:
        """Raise ConfigurationError when no request could possibly succeed."""
        if not self.model:
            raise ConfigurationError(
                "No model configured. Set llm.model in .shadowsync.yml or SHADOWSYNC_LLM_MODEL."
            )
        if self._custom_runner is not None:
            return
        if not self.base_url:
            raise ConfigurationError("No base_url configured for the model provider.")
        host = urlparse(self.base_url).hostname
        if not self.api_key and not (host and self._is_local_host(host)):
            raise ConfigurationError(
                "Your model provider API key is not configured. "
                "Set llm.api_key in .shadowsync.yml or SHADOWSYNC_LLM_API_KEY."
            )

    # ------------------------------------------------------------------
    # Internals

    def _build_request(self, system_prompt: str, user_prompt: str, *, stream: bool) -> LLMRequest:
        self.ensure_configured()
        return LLMRequest(
            prompt=user_prompt,
            system=system_prompt,
            model=self.model or "",
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            base_url=self.base_url,
            api_key=self.api_key,
            request_timeout=self.request_timeout,
            stream=stream,
        )

    @staticmethod
    def _normalize_base_url(url: str) -> str:
        return url.rstrip("/")

    @staticmethod
    def _http_request(request: LLMRequest) -> Request:
        endpoint = f"{request.base_url}/chat/completions"
        payload: dict[str, object] = {
            "model": request.model,
            "messages": LLMRunner._build_messages(request.system, request.prompt),
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        if request.stream:
            payload["stream"] = True

        data = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if request.api_key:
            headers["Authorization"] = f"Bearer {request.api_key}"
        return Request(endpoint, data=data, headers=headers, method="POST")

    @staticmethod
    def _http_runner(request: LLMRequest) -> str:
        http_request = LLMRunner._http_request(request)
        timeout = request.request_timeout or 120.0

        try:
            with urlopen(http_request, timeout=timeout) as response:  # type: ignore[arg-type]
                raw = response.read()
        except HTTPError as exc:
            raise GenerationError(LLMRunner._describe_http_error(exc)) from exc
        except URLError as exc:
            raise GenerationError(f"Model request failed: {exc.reason}") from exc

        try:
            response_payload = json.loads(raw.decode("utf-8"))
        except json.JSONDecodeError as exc:
            raise GenerationError("Model provider returned invalid JSON") from exc

        LLMRunner._raise_for_payload(response_payload)
        return LLMRunner._extract_content(response_payload)

    @staticmethod
    def _http_stream(request: LLMRequest) -> Iterator[str]:
        http_request = LLMRunner._http_request(request)
        timeout = request.request_timeout or 120.0

        try:
            with urlopen(http_request, timeout=timeout) as response:  # type: ignore[arg-type]
                for raw_line in response:
                    line = raw_line.decode("utf-8", errors="ignore").strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        payload = json.loads(data)
                    except json.JSONDecodeError as exc:
                        raise GenerationError("Model provider streamed invalid JSON") from exc
                    LLMRunner._raise_for_payload(payload)
                    fragment = LLMRunner._extract_delta(payload)
                    if fragment:
                        yield fragment
        except HTTPError as exc:
            raise GenerationError(LLMRunner._describe_http_error(exc)) from exc
        except URLError as exc:
            raise GenerationError(f"Model request failed: {exc.reason}") from exc

    @staticmethod
    def _describe_http_error(exc: HTTPError) -> str:
        detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
        message = detail.strip() or exc.reason
        return f"Model request failed with status {exc.code}: {message}"

    @staticmethod
    def _build_messages(system: str | None, prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _raise_for_payload(payload: object) -> None:
        if not isinstance(payload, dict):
            raise GenerationError("Model provider returned an unexpected payload")
        error = payload.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise GenerationError(f"Model provider error: {message}")
        choices = payload.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            if choices[0].get("finish_reason") == "content_filter":
                raise GenerationError("Model provider blocked the response (content filter)")

    @staticmethod
    def _extract_content(payload: dict[str, object]) -> str:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str):
                return content
        text = first.get("text")
        if isinstance(text, str):
            return text
        return ""

    @staticmethod
    def _extract_delta(payload: dict[str, object]) -> str:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        delta = first.get("delta")
        if isinstance(delta, dict):
            content = delta.get("content")
            if isinstance(content, str):
                return content
        return ""

    def _resolve_model(self, model: str | None) -> str | None:
        if model:
            return model
        return self._first_env_value(self.ENV_MODEL_KEYS)

    def _resolve_base_url(self, base_url: str | None | object) -> str | None:
        if base_url is None:
            return None
        if base_url is not _AUTO_BASE_URL:
            return self._normalize_base_url(str(base_url))
        env_value = self._first_env_value(self.ENV_BASE_URL_KEYS)
        if env_value:
            return self._normalize_base_url(env_value)
        return self.DEFAULT_BASE_URL

    def _resolve_api_key(self, api_key: str | None | object) -> str | None:
        if api_key is _AUTO_API_KEY:
            return self._first_env_value(self.ENV_API_KEY_KEYS)
        return api_key  # type: ignore[return-value]

    @staticmethod
    def _first_env_value(keys: Sequence[str]) -> str | None:
        for key in keys:
            value = os.getenv(key)
            if value:
                return value
        return None

    @staticmethod
    def _is_local_host(host: str) -> bool:
        lowered = host.lower()
        allowed_hosts = {
            "localhost",
            "127.0.0.1",
            "0.0.0.0",
            "::1",
            "model-runner.docker.internal",
        }
        if lowered in allowed_hosts:
            return True
        if lowered.endswith(".local") or lowered.endswith(".localdomain"):
            return True
        try:
            ip = ipaddress.ip_address(lowered)
        except ValueError:
            return False
        return ip.is_loopback


__all__ = ["LLMRequest", "LLMRunner"]
