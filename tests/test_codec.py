import struct

import pytest

from flowsmith.codec import (
    WAV_HEADER_SIZE,
    AudioSampleBuffer,
    decode_base64,
    encode_base64,
    pcm16_base64_to_wav,
    pcm16_to_samples,
    quantize_sample,
    read_wav,
    samples_to_wav,
)
from flowsmith.errors import InvalidEncodingError


def _pcm(*values: int) -> bytes:
    return struct.pack(f"<{len(values)}h", *values)


def test_decode_base64_standard_alphabet() -> None:
    assert decode_base64("AIA=") == b"\x00\x80"
    assert decode_base64("  AIA=\n") == b"\x00\x80"
    assert decode_base64("") == b""


@pytest.mark.parametrize("text", ["abc", "ab$d", "A===", "AI A="])
def test_decode_base64_rejects_malformed_input(text: str) -> None:
    with pytest.raises(InvalidEncodingError):
        decode_base64(text)


def test_encode_base64_matches_decoder() -> None:
    assert decode_base64(encode_base64(b"\x01\x02\xff")) == b"\x01\x02\xff"


def test_pcm16_minimum_value_decodes_to_minus_one() -> None:
    buffer = pcm16_to_samples(bytes([0x00, 0x80]), 24000, 1)

    assert buffer.channels == ((-1.0,),)
    assert buffer.frame_count == 1


def test_minus_one_encodes_back_to_minimum_value() -> None:
    wav = samples_to_wav(AudioSampleBuffer(sample_rate=24000, channels=((-1.0,),)))

    assert wav[WAV_HEADER_SIZE:] == bytes([0x00, 0x80])


def test_pcm16_deinterleaves_channels() -> None:
    buffer = pcm16_to_samples(_pcm(1, 2, 3, 4, 5, 6), 16000, 2)

    assert buffer.channel_count == 2
    assert buffer.frame_count == 3
    assert buffer.channels[0] == (1 / 32768, 3 / 32768, 5 / 32768)
    assert buffer.channels[1] == (2 / 32768, 4 / 32768, 6 / 32768)
    assert buffer.interleaved() == [value / 32768 for value in range(1, 7)]


def test_pcm16_drops_partial_frame() -> None:
    buffer = pcm16_to_samples(_pcm(100, 200, 300) + b"\x01", 24000, 2)

    assert buffer.frame_count == 1
    assert buffer.channels == ((100 / 32768,), (200 / 32768,))


def test_pcm16_strict_mode_rejects_partial_frame() -> None:
    with pytest.raises(InvalidEncodingError) as exc_info:
        pcm16_to_samples(b"\x00\x00\x01", strict=True)

    assert exc_info.value.context["byte_length"] == 3


def test_wav_header_fields() -> None:
    buffer = AudioSampleBuffer(sample_rate=24000, channels=((0.0, 0.5, -0.5),))
    wav = samples_to_wav(buffer)

    assert wav[0:4] == b"RIFF"
    assert int.from_bytes(wav[4:8], "little") == 36 + 6
    assert wav[8:12] == b"WAVE"
    assert wav[12:16] == b"fmt "
    assert int.from_bytes(wav[16:20], "little") == 16
    assert int.from_bytes(wav[20:22], "little") == 1
    assert int.from_bytes(wav[22:24], "little") == 1
    assert int.from_bytes(wav[24:28], "little") == 24000
    assert int.from_bytes(wav[28:32], "little") == 48000
    assert int.from_bytes(wav[32:34], "little") == 2
    assert int.from_bytes(wav[34:36], "little") == 16
    assert wav[36:40] == b"data"
    assert int.from_bytes(wav[40:44], "little") == 6
    assert wav[44:] == _pcm(0, 16383, -16384)


def test_wav_keeps_only_first_channel() -> None:
    buffer = pcm16_to_samples(_pcm(-10, 10, -20, 20, -30, 30, -40, 40), 8000, 2)
    wav = samples_to_wav(buffer)

    assert len(wav) == 44 + buffer.frame_count * 2
    assert read_wav(wav).channels == ((-10 / 32768, -20 / 32768, -30 / 32768, -40 / 32768),)


def test_quantize_clamps_and_scales_asymmetrically() -> None:
    assert quantize_sample(1.0) == 32767
    assert quantize_sample(1.7) == 32767
    assert quantize_sample(-1.0) == -32768
    assert quantize_sample(-3.0) == -32768
    assert quantize_sample(0.0) == 0
    assert quantize_sample(0.5) == 16383
    assert quantize_sample(-0.25) == -8192


def test_round_trip_stays_within_one_lsb() -> None:
    values = [-32768, -20000, -1, 0, 1, 255, 16384, 32767]
    original = pcm16_to_samples(_pcm(*values), 24000, 1)

    decoded = read_wav(samples_to_wav(original))
    recovered = [round(sample * 32768) for sample in decoded.channels[0]]

    assert decoded.sample_rate == 24000
    assert decoded.frame_count == len(values)
    for before, after in zip(values, recovered, strict=True):
        assert abs(before - after) <= 1
        if before <= 0:
            assert before == after


def test_read_wav_rejects_foreign_container() -> None:
    with pytest.raises(InvalidEncodingError):
        read_wav(b"OggS" + bytes(60))
    with pytest.raises(InvalidEncodingError):
        read_wav(b"RIFF")


def test_base64_to_wav_pipeline() -> None:
    wav = pcm16_base64_to_wav(encode_base64(_pcm(0, -32768)), 24000, 1)

    assert len(wav) == 44 + 4
    assert wav[44:] == _pcm(0, -32768)


def test_buffer_rejects_ragged_channels() -> None:
    with pytest.raises(ValueError):
        AudioSampleBuffer(sample_rate=24000, channels=((0.0,), (0.0, 0.1)))
    with pytest.raises(ValueError):
        AudioSampleBuffer(sample_rate=0, channels=((0.0,),))
