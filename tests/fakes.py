"""Test doubles for the provider boundary."""

from __future__ import annotations

from collections.abc import Iterable
from types import SimpleNamespace
from typing import Any

from flowsmith.provider import ProviderResponse


class FakeModels:
    def __init__(self, responses: Iterable[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def generate_content(self, *, model: str, contents: Any, config: Any) -> Any:
        self.calls.append({"model": model, "contents": contents, "config": config})
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeClientFactory:
    """Stands in for ``genai.Client`` and records every client it builds."""

    def __init__(self, *responses: Any) -> None:
        self.models = FakeModels(responses)
        self.api_keys: list[str] = []
        self.clients: list[Any] = []

    def __call__(self, api_key: str) -> Any:
        self.api_keys.append(api_key)
        client = SimpleNamespace(aio=SimpleNamespace(models=self.models))
        self.clients.append(client)
        return client


class FakeProvider:
    """Scripted provider; each entry is a ``ProviderResponse`` or an exception to raise."""

    def __init__(self, *responses: ProviderResponse | BaseException) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def generate(self, prompt: str, response_schema: Any = None, modality: Any = None, **kwargs: Any) -> Any:
        self.calls.append({"prompt": prompt, "response_schema": response_schema, "modality": modality, **kwargs})
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class StatusError(Exception):
    """Provider failure carrying an HTTP-like status code."""

    def __init__(self, status: int | str | None, message: str = "provider failure") -> None:
        super().__init__(message)
        self.status = status
        self.message = message


def sdk_response(text: str | None = None, *, candidates: list[Any] | None = None) -> SimpleNamespace:
    return SimpleNamespace(text=text, candidates=candidates or [])
