# variantlens/clients/providers.py
"""
Text-generation provider chain.

A ranked list of providers, each call made through the shared Gateway under
the dependency name "<provider>:<model>", so every provider/model pair gets its
own circuit, timeout and retry policy. The chain moves to the next provider on
anything but `Data`. The prompt content itself is the caller's business.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from ..config import GENERATION_TIMEOUT_S
from ..net import Gateway, RequestSpec, parse_json_body
from ..utils.outcome import CallOutcome, Data, Unavailable, UnavailableReason
from .sources import Source, get_source, make_headers

log = logging.getLogger("variantlens.providers")

CHAIN_DEPENDENCY = "text-generation"


class Provider:
    kind = ""

    def __init__(self, model: str, source: Optional[Source] = None, api_key: Optional[str] = None):
        self.model = model
        self.source = source or get_source(self.kind)
        self.api_key = api_key if api_key is not None else self.source.token()

    @property
    def dependency(self) -> str:
        return f"{self.kind}:{self.model}"

    def available(self) -> bool:
        return bool(self.api_key)

    def headers(self) -> Dict[str, str]:
        return make_headers(self.source)

    def request(self, prompt: str) -> RequestSpec:
        raise NotImplementedError


def _text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("empty completion")
    return value


def _field(value: Any, key: str) -> Any:
    if not isinstance(value, dict) or key not in value:
        raise ValueError(f"completion payload has no '{key}'")
    return value[key]


def _first(value: Any, what: str) -> Any:
    if not isinstance(value, list) or not value:
        raise ValueError(f"completion payload has no {what}")
    return value[0]


def gemini_text(resp: httpx.Response) -> str:
    candidate = _first(_field(parse_json_body(resp), "candidates"), "candidates")
    part = _first(_field(_field(candidate, "content"), "parts"), "parts")
    return _text(_field(part, "text"))


def openrouter_text(resp: httpx.Response) -> str:
    choice = _first(_field(parse_json_body(resp), "choices"), "choices")
    return _text(_field(_field(choice, "message"), "content"))


def ollama_text(resp: httpx.Response) -> str:
    return _text(_field(parse_json_body(resp), "response"))


class GeminiProvider(Provider):
    kind = "gemini"

    def headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key or ""}

    def request(self, prompt: str) -> RequestSpec:
        return RequestSpec(
            self.source.url(f"/models/{self.model}:generateContent"),
            method="POST",
            json_body={"contents": [{"parts": [{"text": prompt}]}]},
            headers=self.headers(),
            parse=gemini_text,
        )


class OpenRouterProvider(Provider):
    kind = "openrouter"

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key or ''}"}

    def request(self, prompt: str) -> RequestSpec:
        return RequestSpec(
            self.source.url("/chat/completions"),
            method="POST",
            json_body={"model": self.model, "messages": [{"role": "user", "content": prompt}]},
            headers=self.headers(),
            parse=openrouter_text,
        )


class OllamaProvider(Provider):
    kind = "ollama"

    def available(self) -> bool:
        return bool(self.source.base_url)

    def request(self, prompt: str) -> RequestSpec:
        return RequestSpec(
            self.source.url("/api/generate"),
            method="POST",
            json_body={"model": self.model, "prompt": prompt, "stream": False},
            headers=self.headers(),
            parse=ollama_text,
        )


def default_providers() -> List[Provider]:
    return [
        GeminiProvider(os.getenv("GEMINI_MODEL", "gemma-3-27b-it")),
        OpenRouterProvider("meta-llama/llama-3.3-70b-instruct:free"),
        OpenRouterProvider("meta-llama/llama-3.1-8b-instruct:free"),
        OpenRouterProvider("mistralai/mistral-7b-instruct:free"),
        OllamaProvider(os.getenv("LOCAL_LLM_MODEL", "llama3.1:8b")),
    ]


class ProviderChain:
    def __init__(self, gateway: Gateway, providers: Optional[List[Provider]] = None, timeout: float = GENERATION_TIMEOUT_S):
        self.gateway = gateway
        self.providers = providers if providers is not None else default_providers()
        self.timeout = timeout

    def describe(self) -> List[Dict[str, Any]]:
        return [{"dependency": p.dependency, "configured": p.available()} for p in self.providers]

    async def generate(self, prompt: str) -> CallOutcome:
        last: Optional[Unavailable] = None
        for provider in self.providers:
            if not provider.available():
                log.debug("[providers] %s has no credentials, skipping", provider.dependency)
                continue
            outcome = await self.gateway.call(provider.request(prompt), provider.dependency, timeout=self.timeout)
            if isinstance(outcome, Data):
                return Data({"text": outcome.value, "provider": provider.kind, "model": provider.model})
            if isinstance(outcome, Unavailable):
                last = outcome
            log.warning("[providers] %s failed, trying next provider", provider.dependency)

        if last is None:
            return Unavailable(UnavailableReason.UNKNOWN, CHAIN_DEPENDENCY, "no provider configured or all returned nothing")
        return Unavailable(last.reason, CHAIN_DEPENDENCY, f"all providers failed; last: {last.dependency} ({last.detail})", last.status_code)
