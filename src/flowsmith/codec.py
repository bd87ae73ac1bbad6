"""Audio and transport codecs.

Covers base64 transport decoding, PCM16 to planar float samples, and the
canonical 44-byte RIFF/WAVE container used for playback and download.
"""

from __future__ import annotations

import base64
import binascii
import struct
from dataclasses import dataclass

from loguru import logger

from flowsmith.errors import InvalidEncodingError

PCM16_SCALE = 32768.0
POSITIVE_FULL_SCALE = 32767
NEGATIVE_FULL_SCALE = 32768
BYTES_PER_SAMPLE = 2
BITS_PER_SAMPLE = 16
WAV_HEADER_SIZE = 44
WAV_FORMAT_PCM = 1
# RIFF, size, WAVE, "fmt ", 16, format, channels, rate, byte rate, block align, bits, "data", data size
_WAV_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True)
class AudioSampleBuffer:
    """Planar float samples in [-1.0, 1.0], one tuple per channel."""

    sample_rate: int
    channels: tuple[tuple[float, ...], ...]

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if not self.channels:
            raise ValueError("at least one channel is required")
        lengths = {len(channel) for channel in self.channels}
        if len(lengths) != 1:
            raise ValueError("all channels must hold the same number of frames")

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def frame_count(self) -> int:
        return len(self.channels[0])

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / self.sample_rate

    def interleaved(self) -> list[float]:
        """Samples in frame order (frame 0 channel 0, frame 0 channel 1, ...)."""
        return [sample for frame in zip(*self.channels, strict=True) for sample in frame]


def decode_base64(text: str) -> bytes:
    """Decode standard-alphabet base64, rejecting malformed input."""
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidEncodingError(f"Malformed base64 input: {exc}") from exc


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def pcm16_to_samples(
    data: bytes,
    sample_rate: int = 24000,
    channel_count: int = 1,
    *,
    strict: bool = False,
) -> AudioSampleBuffer:
    """Decode interleaved little-endian PCM16 into a planar sample buffer.

    Trailing bytes that do not fill a whole frame are dropped, or rejected
    with ``InvalidEncodingError`` when ``strict`` is set.
    """
    if channel_count < 1:
        raise ValueError("channel_count must be >= 1")
    frame_size = BYTES_PER_SAMPLE * channel_count
    frame_count = len(data) // frame_size
    remainder = len(data) - frame_count * frame_size
    if remainder:
        if strict:
            raise InvalidEncodingError(
                f"PCM16 payload of {len(data)} bytes is not a multiple of the {frame_size}-byte frame size",
                byte_length=len(data),
                frame_size=frame_size,
            )
        logger.warning("codec.pcm.truncated bytes={} frame_size={} dropped={}", len(data), frame_size, remainder)

    usable = memoryview(data)[: frame_count * frame_size]
    values = [value / PCM16_SCALE for (value,) in struct.iter_unpack("<h", usable)]
    channels = tuple(tuple(values[channel::channel_count]) for channel in range(channel_count))
    return AudioSampleBuffer(sample_rate=sample_rate, channels=channels)


def quantize_sample(sample: float) -> int:
    """Clamp to [-1.0, 1.0] and scale asymmetrically onto the signed 16-bit range."""
    clamped = max(-1.0, min(1.0, sample))
    if clamped < 0:
        return int(clamped * NEGATIVE_FULL_SCALE)
    return int(clamped * POSITIVE_FULL_SCALE)


def samples_to_wav(buffer: AudioSampleBuffer) -> bytes:
    """Encode channel 0 of ``buffer`` as a mono 16-bit PCM RIFF/WAVE container."""
    channel_count = 1
    block_align = channel_count * BYTES_PER_SAMPLE
    data_size = buffer.frame_count * block_align
    header = _WAV_HEADER.pack(
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        WAV_FORMAT_PCM,
        channel_count,
        buffer.sample_rate,
        buffer.sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )
    samples = [quantize_sample(sample) for sample in buffer.channels[0]]
    return header + struct.pack(f"<{len(samples)}h", *samples)


def read_wav(data: bytes) -> AudioSampleBuffer:
    """Decode a canonical 44-byte-header PCM16 WAVE container."""
    if len(data) < WAV_HEADER_SIZE:
        raise InvalidEncodingError("WAVE payload is shorter than its header", byte_length=len(data))
    (
        riff,
        _riff_size,
        wave,
        fmt,
        fmt_size,
        audio_format,
        channel_count,
        sample_rate,
        _byte_rate,
        _block_align,
        bits,
        data_tag,
        data_size,
    ) = _WAV_HEADER.unpack_from(data)
    if (riff, wave, fmt, data_tag) != (b"RIFF", b"WAVE", b"fmt ", b"data"):
        raise InvalidEncodingError("Not a canonical RIFF/WAVE container")
    if fmt_size != 16 or audio_format != WAV_FORMAT_PCM or bits != BITS_PER_SAMPLE:
        raise InvalidEncodingError("Only 16-bit PCM WAVE data is supported")
    payload = data[WAV_HEADER_SIZE : WAV_HEADER_SIZE + data_size]
    if len(payload) != data_size:
        raise InvalidEncodingError("WAVE data segment is shorter than declared", declared=data_size)
    return pcm16_to_samples(payload, sample_rate, channel_count, strict=True)


def pcm16_base64_to_wav(text: str, sample_rate: int = 24000, channel_count: int = 1) -> bytes:
    """Full playback path: base64 transport text to a WAVE container."""
    return samples_to_wav(pcm16_to_samples(decode_base64(text), sample_rate, channel_count))
