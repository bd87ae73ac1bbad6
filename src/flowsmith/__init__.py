"""Flowsmith - describe an automation, get a blueprint."""

from .blueprint import Blueprint, Platform, Step, StepKind, parse_blueprint
from .codec import AudioSampleBuffer, decode_base64, pcm16_to_samples, samples_to_wav
from .contract import SchemaDescriptor, SchemaKind, parse_structured
from .gateway import ErrorClassification, ErrorKind, PendingInvocation, RetryPolicy, classify_error, invoke, submit
from .simulation import SimulationTrace, StepResult, build_trace

__version__ = "0.1.0"

__all__ = [
    "AudioSampleBuffer",
    "Blueprint",
    "ErrorClassification",
    "ErrorKind",
    "PendingInvocation",
    "Platform",
    "RetryPolicy",
    "SchemaDescriptor",
    "SchemaKind",
    "SimulationTrace",
    "Step",
    "StepKind",
    "StepResult",
    "build_trace",
    "classify_error",
    "decode_base64",
    "invoke",
    "parse_blueprint",
    "parse_structured",
    "pcm16_to_samples",
    "samples_to_wav",
    "submit",
]
