"""Generative AI provider adapter backed by the Google Gen AI SDK."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal, TypeAlias

from google import genai
from google.genai import types
from loguru import logger

from flowsmith.blueprint import Source
from flowsmith.codec import encode_base64
from flowsmith.contract import SchemaDescriptor
from flowsmith.errors import ConfigurationError

ClientFactory: TypeAlias = Callable[[str], Any]


class Modality(StrEnum):
    TEXT = "TEXT"
    AUDIO = "AUDIO"


@dataclass(frozen=True)
class ChatMessage:
    role: Literal["user", "model"]
    content: str


@dataclass(frozen=True)
class Attachment:
    """Inline binary input such as an image."""

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class ProviderResponse:
    text: str | None = None
    audio_base64: str | None = None
    grounding_sources: tuple[Source, ...] = field(default_factory=tuple)


def default_client_factory(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


class GeminiProvider:
    """Single call interface to the provider.

    A new SDK client is created right before every request; nothing is shared
    between calls. The credential is read at call time and a missing one fails
    before any network attempt.
    """

    def __init__(
        self,
        credential: Callable[[], str | None],
        *,
        client_factory: ClientFactory = default_client_factory,
    ) -> None:
        self._credential = credential
        self._client_factory = client_factory

    def _new_client(self) -> Any:
        api_key = self._credential()
        if not api_key:
            raise ConfigurationError(
                "API configuration error: no provider credential is set. "
                "Export API_KEY (or FLOWSMITH_API_KEY) before running this command."
            )
        return self._client_factory(api_key)

    async def generate(
        self,
        prompt: str,
        response_schema: SchemaDescriptor | None = None,
        modality: Modality = Modality.TEXT,
        *,
        model: str,
        system_instruction: str | None = None,
        history: Sequence[ChatMessage] = (),
        attachment: Attachment | None = None,
        voice: str | None = None,
        thinking_budget: int | None = None,
        grounded: bool = False,
    ) -> ProviderResponse:
        client = self._new_client()
        config = self._build_config(
            response_schema=response_schema,
            modality=modality,
            system_instruction=system_instruction,
            voice=voice,
            thinking_budget=thinking_budget,
            grounded=grounded,
        )
        contents = self._build_contents(prompt, history=history, attachment=attachment)
        logger.debug("provider.request model={} modality={} structured={}", model, modality, response_schema is not None)
        response = await client.aio.models.generate_content(model=model, contents=contents, config=config)
        if modality is Modality.AUDIO:
            return ProviderResponse(audio_base64=_audio_payload(response))
        return ProviderResponse(text=response.text, grounding_sources=_grounding_sources(response))

    @staticmethod
    def _build_config(
        *,
        response_schema: SchemaDescriptor | None,
        modality: Modality,
        system_instruction: str | None,
        voice: str | None,
        thinking_budget: int | None,
        grounded: bool,
    ) -> types.GenerateContentConfig:
        options: dict[str, Any] = {}
        if system_instruction:
            options["system_instruction"] = system_instruction
        if response_schema is not None:
            options["response_mime_type"] = "application/json"
            options["response_schema"] = response_schema.to_provider_schema()
        if thinking_budget is not None:
            options["thinking_config"] = types.ThinkingConfig(thinking_budget=thinking_budget)
        if grounded:
            options["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        if modality is Modality.AUDIO:
            options["response_modalities"] = [Modality.AUDIO.value]
            if voice:
                options["speech_config"] = types.SpeechConfig(
                    voice_config=types.VoiceConfig(prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice))
                )
        return types.GenerateContentConfig(**options)

    @staticmethod
    def _build_contents(
        prompt: str,
        *,
        history: Sequence[ChatMessage],
        attachment: Attachment | None,
    ) -> list[types.Content]:
        contents = [
            types.Content(role=message.role, parts=[types.Part.from_text(text=message.content)]) for message in history
        ]
        parts = []
        if attachment is not None:
            parts.append(types.Part.from_bytes(data=attachment.data, mime_type=attachment.mime_type))
        parts.append(types.Part.from_text(text=prompt))
        contents.append(types.Content(role="user", parts=parts))
        return contents


def _first_candidate(response: Any) -> Any | None:
    candidates = getattr(response, "candidates", None) or []
    return candidates[0] if candidates else None


def _audio_payload(response: Any) -> str | None:
    candidate = _first_candidate(response)
    content = getattr(candidate, "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None)
        if not data:
            continue
        # The SDK hands back raw bytes; the transport contract is base64 text.
        if isinstance(data, bytes):
            return encode_base64(data)
        return str(data)
    return None


def _grounding_sources(response: Any) -> tuple[Source, ...]:
    candidate = _first_candidate(response)
    metadata = getattr(candidate, "grounding_metadata", None)
    sources: list[Source] = []
    seen: set[str] = set()
    for chunk in getattr(metadata, "grounding_chunks", None) or []:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if not uri or uri in seen:
            continue
        seen.add(uri)
        sources.append(Source(title=getattr(web, "title", None) or uri, uri=uri))
    return tuple(sources)
