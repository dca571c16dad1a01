"""
Streaming speech service wire protocol.

Message models and codec used by the transcription session.
"""

from .codec import (
  InboundMessage,
  MessageDecodeError,
  deserialize_message,
  serialize_message,
  terminate_request,
)
from .messages import (
  BeginMessage,
  TerminateRequest,
  TerminationMessage,
  TurnMessage,
  UnknownMessage,
  Word,
)

__all__ = [
  "BeginMessage",
  "InboundMessage",
  "MessageDecodeError",
  "TerminateRequest",
  "TerminationMessage",
  "TurnMessage",
  "UnknownMessage",
  "Word",
  "deserialize_message",
  "serialize_message",
  "terminate_request",
]
