"""Feature operations built on the provider, gateway and contracts."""

from __future__ import annotations

from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TypeVar

from loguru import logger

from flowsmith.blueprint import BLUEPRINT_SCHEMA, Blueprint, Platform, Source, parse_blueprint
from flowsmith.codec import AudioSampleBuffer, decode_base64, pcm16_to_samples, samples_to_wav
from flowsmith.config import Settings, load_settings
from flowsmith.errors import ConfigurationError, InvalidEncodingError, MalformedOutputError
from flowsmith.gateway import RetryPolicy, invoke
from flowsmith.provider import Attachment, ChatMessage, GeminiProvider, Modality, ProviderResponse
from flowsmith.simulation import TRACE_SCHEMA, SimulationTrace, build_trace, parse_sample_payload, render_simulation_prompt

T = TypeVar("T")

MAX_DESCRIPTION_CHARS = 4000
MIN_DESCRIPTION_CHARS = 20
MAX_SPEECH_CHARS = 1000
MAX_CHAT_EXCHANGES = 20

ARCHITECT_INSTRUCTION = (
    "You are an Elite Solutions Architect. Output ONLY a valid JSON object matching the provided schema. "
    "Do not include markdown blocks like ```json."
)
ADVISOR_INSTRUCTION = (
    "You are an AI automation expert. Provide concise, actionable advice for Zapier, n8n, and custom scripts."
)
SIMULATOR_INSTRUCTION = (
    "You are an automation test harness. Trace the workflow step by step against the supplied event "
    "and output ONLY a JSON object matching the provided schema."
)
CHAT_FALLBACK = "I'm sorry, I couldn't generate a response."
IMAGE_FALLBACK = "I couldn't analyze the image."


@dataclass(frozen=True)
class VoiceModel:
    id: str
    name: str
    type: str
    description: str


VOICES: tuple[VoiceModel, ...] = (
    VoiceModel("Kore", "Kore", "Professional", "Clear and corporate tone"),
    VoiceModel("Puck", "Puck", "Energetic", "Upbeat and fast-paced"),
    VoiceModel("Charon", "Charon", "Authoritative", "Serious and deep"),
    VoiceModel("Fenrir", "Fenrir", "Calm", "Slow and soothing"),
    VoiceModel("Zephyr", "Zephyr", "Friendly", "Approachable and warm"),
)


@dataclass(frozen=True)
class ChatReply:
    text: str
    sources: tuple[Source, ...] = ()


@dataclass(frozen=True)
class SpeechClip:
    voice: str
    samples: AudioSampleBuffer
    wav: bytes


def resolve_platform(value: Platform | str) -> Platform:
    try:
        return Platform(str(value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(platform.value for platform in Platform)
        raise ConfigurationError(f"Unknown platform {value!r}; choose one of: {choices}.") from exc


def resolve_voice(name: str) -> VoiceModel:
    for voice in VOICES:
        if voice.id.lower() == name.strip().lower():
            return voice
    choices = ", ".join(voice.id for voice in VOICES)
    raise ConfigurationError(f"Unknown voice {name!r}; choose one of: {choices}.")


class AutomationStudio:
    """Entry point for every AI-backed feature."""

    def __init__(
        self,
        settings: Settings,
        *,
        provider: GeminiProvider | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._settings = settings
        self._provider = provider or GeminiProvider(self._current_api_key)
        self._policy = policy or settings.retry_policy()

    def _current_api_key(self) -> str | None:
        """Explicit credential first, otherwise whatever the environment holds right now."""
        return self._settings.resolved_api_key or load_settings().resolved_api_key

    async def _invoke(self, label: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await invoke(
            operation,
            self._policy,
            attempt_timeout=self._settings.attempt_timeout_seconds,
            label=label,
        )

    async def generate_blueprint(self, platform: Platform | str, description: str) -> Blueprint:
        target = resolve_platform(platform)
        requirements = description.strip()
        if len(description) > MAX_DESCRIPTION_CHARS:
            raise ConfigurationError(
                f"Input payload exceeds the architectural limit of {MAX_DESCRIPTION_CHARS:,} characters.",
                length=len(description),
            )
        if len(requirements) < MIN_DESCRIPTION_CHARS:
            raise ConfigurationError(
                f"Describe the automation in at least {MIN_DESCRIPTION_CHARS} characters.",
                length=len(requirements),
            )

        response: ProviderResponse = await self._invoke(
            "blueprint",
            lambda: self._provider.generate(
                f"Build a production-grade automation workflow for {target.value}. Requirements: {requirements}",
                BLUEPRINT_SCHEMA,
                model=self._settings.blueprint_model,
                system_instruction=ARCHITECT_INSTRUCTION,
                thinking_budget=self._settings.thinking_budget,
            ),
        )
        blueprint = parse_blueprint(response.text)
        logger.info("studio.blueprint platform={} steps={}", blueprint.platform, len(blueprint.steps))
        return blueprint

    async def chat(self, message: str, history: Iterable[ChatMessage] = (), *, grounded: bool = False) -> ChatReply:
        text = message.strip()
        if not text:
            raise ConfigurationError("Type a question before sending.")
        recent = tuple(history)[-MAX_CHAT_EXCHANGES * 2 :]
        response: ProviderResponse = await self._invoke(
            "chat",
            lambda: self._provider.generate(
                text,
                model=self._settings.chat_model,
                system_instruction=ADVISOR_INSTRUCTION,
                history=recent,
                grounded=grounded,
            ),
        )
        return ChatReply(text=response.text or CHAT_FALLBACK, sources=response.grounding_sources)

    async def analyze_image(self, image_base64: str, prompt: str, mime_type: str = "image/jpeg") -> str:
        image = decode_base64(image_base64)
        if not image:
            raise InvalidEncodingError("The image payload is empty.")
        attachment = Attachment(data=image, mime_type=mime_type)
        response: ProviderResponse = await self._invoke(
            "image",
            lambda: self._provider.generate(prompt, model=self._settings.vision_model, attachment=attachment),
        )
        return response.text or IMAGE_FALLBACK

    async def synthesize_speech(self, text: str, voice: str = "Kore") -> SpeechClip:
        selected = resolve_voice(voice)
        script = text.strip()[:MAX_SPEECH_CHARS]
        if not script:
            raise ConfigurationError("Provide some text to read aloud.")
        response: ProviderResponse = await self._invoke(
            "speech",
            lambda: self._provider.generate(
                script,
                modality=Modality.AUDIO,
                model=self._settings.speech_model,
                voice=selected.id,
            ),
        )
        if not response.audio_base64:
            raise MalformedOutputError("No audio data was returned from the server.")
        samples = pcm16_to_samples(
            decode_base64(response.audio_base64),
            self._settings.speech_sample_rate,
            self._settings.speech_channels,
        )
        logger.info("studio.speech voice={} frames={} seconds={:.2f}", selected.id, samples.frame_count, samples.duration_seconds)
        return SpeechClip(voice=selected.id, samples=samples, wav=samples_to_wav(samples))

    async def simulate_blueprint(self, blueprint: Blueprint, payload_text: str) -> SimulationTrace:
        payload = parse_sample_payload(payload_text)
        response: ProviderResponse = await self._invoke(
            "simulation",
            lambda: self._provider.generate(
                render_simulation_prompt(blueprint, payload),
                TRACE_SCHEMA,
                model=self._settings.simulation_model,
                system_instruction=SIMULATOR_INSTRUCTION,
            ),
        )
        trace = build_trace(blueprint, response.text)
        logger.info("studio.simulation overall={} steps={}", trace.overall_status, len(trace.step_results))
        return trace


@dataclass
class ChatSession:
    """In-memory conversation capped to the most recent exchanges."""

    studio: AutomationStudio
    grounded: bool = False
    history: deque[ChatMessage] = field(default_factory=lambda: deque(maxlen=MAX_CHAT_EXCHANGES * 2))

    async def send(self, message: str) -> ChatReply:
        reply = await self.studio.chat(message, tuple(self.history), grounded=self.grounded)
        self.history.append(ChatMessage(role="user", content=message.strip()))
        self.history.append(ChatMessage(role="model", content=reply.text))
        return reply

    def reset(self) -> None:
        self.history.clear()
