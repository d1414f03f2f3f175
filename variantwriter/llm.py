"""Generation backend client.

Public API:
- get_client(api_key, base_url) -> OpenAI | AzureOpenAI
- Generator(config, transport=None).generate(prompt: dict) -> GenerationResult
- build_request(config, prompt) -> dict
- extract_variants(obj) -> list[str]

Provider profiles:
- generic-json: POST {model, temperature, top_p, n, prompt} to provider.base_url over httpx
- openai / openai-chat: chat.completions through the openai SDK, JSON response format

A transport is any callable taking the request body and returning the decoded
response object, raising TransportError on failure. Tests inject one; live runs
build one from the provider profile.
"""
from __future__ import annotations

import json
import os
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import openai
from openai import AzureOpenAI, OpenAI

from .config import BUBBLE_SEPARATOR, PipelineConfig
from .context import GenerationError, UnsupportedParameterError
from .env import normalize_base_url
from .logging import breadcrumb as _breadcrumb, log_run as _log_run
from .tokenizer import count_chat_tokens as _count_chat_tokens, estimate_prompt_tokens as _estimate_prompt_tokens

PROFILE_GENERIC = "generic-json"
PROFILE_OPENAI = ("openai", "openai-chat")

# Request keys that may be dropped when a backend rejects them.
SAMPLING_PARAMS = ("temperature", "top_p", "n", "response_format", "max_tokens")

_REJECTION_RE = re.compile(r"unsupported|not supported|unrecognized|unknown (parameter|field|argument)", re.I)

_CLIENTS: Dict[Tuple[str, str], Any] = {}


class TransportError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        return self.status is not None and 400 <= self.status < 500


Transport = Callable[[Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class GenerationResult:
    variants: List[str]
    raw: Dict[str, Any]
    request: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"variants": list(self.variants), "raw": self.raw, "request": self.request}


def get_client(api_key: str, base_url: Optional[str] = None, http_client: Optional[httpx.Client] = None):
    """Return a cached OpenAI client; Azure when AZURE_OPENAI_ENDPOINT is set.

    SDK retries are disabled; Generator.generate owns the retry policy.
    A client built around an explicit http_client is not cached.
    """
    azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT") or os.getenv("AZURE_OPENAI_API_BASE")
    cache_key = (azure_endpoint or base_url or "default", api_key)
    if http_client is None and cache_key in _CLIENTS:
        return _CLIENTS[cache_key]
    if azure_endpoint:
        api_version = os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-01")
        client = AzureOpenAI(azure_endpoint=azure_endpoint, api_version=api_version, api_key=api_key,
                             max_retries=0, http_client=http_client)
        _breadcrumb(f"llm:client-initialized azure_endpoint={azure_endpoint} api_version={api_version}")
    elif base_url:
        bu = normalize_base_url(base_url)
        client = OpenAI(base_url=bu, api_key=api_key, max_retries=0, http_client=http_client)
        _breadcrumb(f"llm:client-initialized base_url={bu}")
    else:
        client = OpenAI(api_key=api_key, max_retries=0, http_client=http_client)
        _breadcrumb("llm:client-initialized base_url=default")
    if http_client is None:
        _CLIENTS[cache_key] = client
    return client


def mock_variants(content_key: str, n: int) -> List[str]:
    return [f"[{content_key}] Variant {i + 1} {BUBBLE_SEPARATOR} Second bubble (optional)" for i in range(n)]


def chat_messages(prompt: Dict[str, Any]) -> List[Dict[str, str]]:
    body = {k: v for k, v in prompt.items() if k != "system"}
    return [
        {"role": "system", "content": str(prompt.get("system") or "")},
        {"role": "user", "content": json.dumps(body, ensure_ascii=False)},
    ]


def build_request(config: PipelineConfig, prompt: Dict[str, Any]) -> Dict[str, Any]:
    name = config.provider.name
    if name == PROFILE_GENERIC:
        return {
            "model": config.provider.model,
            "temperature": config.gen.temperature,
            "top_p": config.gen.top_p,
            "n": config.gen.num_variants,
            "prompt": prompt,
        }
    if name in PROFILE_OPENAI:
        return {
            "model": config.provider.model,
            "messages": chat_messages(prompt),
            "temperature": config.gen.temperature,
            "top_p": config.gen.top_p,
            "n": 1,
            "response_format": {"type": "json_object"},
        }
    raise GenerationError(f"Unknown provider profile: {name!r}")


def _variants_from_content(content: str) -> List[str]:
    try:
        parsed = json.loads(content)
    except ValueError:
        return [ln.strip() for ln in content.splitlines() if ln.strip()]
    if isinstance(parsed, dict) and isinstance(parsed.get("variants"), list):
        return [str(v) for v in parsed["variants"]]
    if isinstance(parsed, list):
        return [str(v) for v in parsed]
    return []


def extract_variants(obj: Any) -> List[str]:
    """Read variants from a direct list, chat message JSON, or choices[].text."""
    if not isinstance(obj, dict):
        raise GenerationError("Cannot extract variants from response: not an object")
    if isinstance(obj.get("variants"), list):
        return [str(v) for v in obj["variants"]]
    choices = obj.get("choices")
    if isinstance(choices, list):
        out: List[str] = []
        for c in choices:
            if not isinstance(c, dict):
                continue
            msg = c.get("message")
            if isinstance(msg, dict) and isinstance(msg.get("content"), str):
                out.extend(_variants_from_content(msg["content"]))
            elif c.get("text") is not None:
                out.append(str(c["text"]))
        if out:
            return out
    raise GenerationError("Cannot extract variants from response")


def rejected_parameter(message: str, request: Dict[str, Any]) -> Optional[str]:
    """Name of the sampling parameter a rejection message complains about, if any."""
    if not _REJECTION_RE.search(message or ""):
        return None
    for key in SAMPLING_PARAMS:
        if key not in request:
            continue
        if re.search(rf"[\"'`]{re.escape(key)}[\"'`]", message):
            return key
    for key in SAMPLING_PARAMS:
        if key in request and len(key) > 1 and re.search(rf"\b{re.escape(key)}\b", message):
            return key
    return None


class Generator:
    def __init__(
        self,
        config: PipelineConfig,
        transport: Optional[Transport] = None,
        *,
        http_transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.transport = transport
        self.http_transport = http_transport
        self._sleep = sleep
        self._last_sent: Optional[float] = None

    # ---- transports ----

    def _httpx_transport(self, api_key: str) -> Transport:
        url = self.config.provider.base_url
        timeout = httpx.Timeout(self.config.provider.timeout_ms / 1000.0)
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}

        def send(request: Dict[str, Any]) -> Dict[str, Any]:
            try:
                with httpx.Client(timeout=timeout, transport=self.http_transport) as client:
                    r = client.post(url, headers=headers, json=request)
            except httpx.HTTPError as e:
                raise TransportError(f"{type(e).__name__}: {e}")
            if not 200 <= r.status_code < 300:
                raise TransportError(f"HTTP {r.status_code}: {r.text}", status=r.status_code)
            try:
                return r.json()
            except ValueError as e:
                raise TransportError(f"Invalid JSON response: {e}", status=r.status_code)

        return send

    def _openai_transport(self, api_key: str) -> Transport:
        http_client = httpx.Client(transport=self.http_transport) if self.http_transport is not None else None
        client = get_client(api_key, self.config.provider.base_url or None, http_client)
        timeout_s = self.config.provider.timeout_ms / 1000.0

        def send(request: Dict[str, Any]) -> Dict[str, Any]:
            try:
                resp = client.chat.completions.create(**request, timeout=timeout_s)
            except openai.APIStatusError as e:
                raise TransportError(str(e), status=e.status_code)
            except openai.APIError as e:
                raise TransportError(f"{type(e).__name__}: {e}")
            return resp.model_dump()

        return send

    def _default_transport(self, api_key: str) -> Transport:
        if self.config.provider.name in PROFILE_OPENAI:
            return self._openai_transport(api_key)
        return self._httpx_transport(api_key)

    # ---- generation ----

    def _mock(self, prompt: Dict[str, Any]) -> GenerationResult:
        ck = str((prompt.get("task") or {}).get("contentKey") or "unknown.key")
        variants = mock_variants(ck, self.config.gen.num_variants)
        _breadcrumb(f"llm:mock n={len(variants)} key={ck}")
        raw = {"mock": True, "model": self.config.provider.model, "variants": variants}
        return GenerationResult(variants=variants, raw=raw, request={"mock": True})

    def _pace(self) -> None:
        rpm = self.config.rate_limit.rpm
        if rpm > 0 and self._last_sent is not None:
            wait = 60.0 / rpm - (time.monotonic() - self._last_sent)
            if wait > 0:
                self._sleep(wait)
        self._last_sent = time.monotonic()

    def _log_request(self, request: Dict[str, Any], prompt: Dict[str, Any]) -> None:
        model = self.config.provider.model
        try:
            if "messages" in request:
                ptoks = int(_count_chat_tokens(request["messages"], model))
            else:
                ptoks = int(_estimate_prompt_tokens(prompt))
        except Exception:
            ptoks = 0
        _log_run(
            f"LLM request | provider={self.config.provider.name} model={model} "
            f"temp={request.get('temperature', 'n/a')} top_p={request.get('top_p', 'n/a')} "
            f"n={request.get('n', 'n/a')} prompt_tokens={ptoks} timeout_ms={self.config.provider.timeout_ms}"
        )

    def generate(self, prompt: Dict[str, Any]) -> GenerationResult:
        if self.config.mock_generation:
            return self._mock(prompt)

        key_env = self.config.provider.api_key_env
        api_key = os.getenv(key_env) or ""
        if not api_key:
            raise GenerationError(f"Missing API key env: {key_env}")

        request = build_request(self.config, prompt)
        send = self.transport or self._default_transport(api_key)
        retries = max(0, self.config.rate_limit.retry_count)
        backoff_s = max(0, self.config.rate_limit.retry_backoff_ms) / 1000.0
        stripped: Optional[str] = None
        attempt = 0
        self._log_request(request, prompt)
        while True:
            self._pace()
            try:
                obj = send(request)
                variants = extract_variants(obj)
                _log_run(f"LLM response | variants={len(variants)} attempt={attempt + 1}")
                return GenerationResult(variants=variants, raw=obj, request=dict(request))
            except TransportError as e:
                param = rejected_parameter(str(e), request) if e.is_client_error else None
                if param is not None:
                    if stripped is not None:
                        raise UnsupportedParameterError(
                            f"Backend rejected '{param}' after '{stripped}' was removed: {e}", param
                        ) from e
                    stripped = param
                    request = {k: v for k, v in request.items() if k != param}
                    _log_run(f"LLM request | dropped unsupported parameter {param}; retrying")
                    continue
                last: Exception = e
            except GenerationError as e:
                last = e
            if attempt >= retries:
                _log_run(f"LLM error | giving up after {attempt + 1} attempt(s): {last}")
                raise GenerationError(f"Generation failed after {attempt + 1} attempt(s): {last}") from last
            attempt += 1
            _breadcrumb(f"llm:retry attempt={attempt} backoff_ms={self.config.rate_limit.retry_backoff_ms} err={type(last).__name__}")
            self._sleep(backoff_s)
