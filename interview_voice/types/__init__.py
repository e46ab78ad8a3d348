"""
Interview Voice Types Module

Wire protocol, pipeline events and the error taxonomy.
"""

from .errors import (
    ErrorCause,
    PipelineError,
    OutOfOrderChunk,
    BufferClosed,
    AlreadyClosed,
    ProtocolError,
    EmptyUtterance,
    TranscriptionUnavailable,
    GenerationUnavailable,
    SynthesisUnavailable,
    StageTimeout,
    StaleResult,
    InvalidTransition,
)
from .messages import parse_client_message
from .pipeline_events import EventKind, PipelineEvent, TurnState

__all__ = [
    "ErrorCause",
    "PipelineError",
    "OutOfOrderChunk",
    "BufferClosed",
    "AlreadyClosed",
    "ProtocolError",
    "EmptyUtterance",
    "TranscriptionUnavailable",
    "GenerationUnavailable",
    "SynthesisUnavailable",
    "StageTimeout",
    "StaleResult",
    "InvalidTransition",
    "parse_client_message",
    "EventKind",
    "PipelineEvent",
    "TurnState",
]
