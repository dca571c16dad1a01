"""
Message codec for the streaming speech protocol.

Keeps JSON handling and pydantic validation out of the session state machine.
"""

import json
from typing import Annotated, TypeAlias

from pydantic import BaseModel, Field, TypeAdapter

from .messages import (
  BeginMessage,
  TerminateRequest,
  TerminationMessage,
  TurnMessage,
  UnknownMessage,
)

KnownMessage: TypeAlias = Annotated[
  BeginMessage | TurnMessage | TerminationMessage, Field(discriminator="type")
]
InboundMessage: TypeAlias = BeginMessage | TurnMessage | TerminationMessage | UnknownMessage

_KNOWN_TYPES = frozenset({"Begin", "Turn", "Termination"})
_known_adapter: TypeAdapter = TypeAdapter(KnownMessage)


class MessageDecodeError(ValueError):
  """An inbound frame was not a JSON object with a string ``type``."""


def deserialize_message(raw: str | bytes) -> InboundMessage:
  """
  Decode one inbound frame.

  :param raw: Text (or UTF-8 bytes) of a single WebSocket message.
  :returns: The typed message; types this client does not know become ``UnknownMessage``.
  :raises MessageDecodeError: when the frame is not a JSON object carrying a ``type``.
  """
  try:
    data = json.loads(raw)
  except (json.JSONDecodeError, UnicodeDecodeError) as e:
    raise MessageDecodeError(f"Frame is not valid JSON: {e}") from e

  if not isinstance(data, dict) or not isinstance(data.get("type"), str):
    raise MessageDecodeError("Frame is not an object with a string 'type'")

  if data["type"] not in _KNOWN_TYPES:
    payload = {key: value for key, value in data.items() if key != "type"}
    return UnknownMessage(type=data["type"], payload=payload)

  return _known_adapter.validate_python(data)


def serialize_message(message: BaseModel) -> str:
  """Serialize an outbound control message to compact JSON."""
  return TypeAdapter(type(message)).dump_json(message).decode("utf-8")


def terminate_request() -> str:
  """The JSON control frame that asks the service to end the session."""
  return serialize_message(TerminateRequest())
