"""
Pydantic models for the streaming speech service protocol.

Inbound messages are JSON text frames discriminated by their ``type`` field. Outbound traffic is
raw binary PCM plus a single JSON control message used to request a graceful shutdown.
"""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class InboundBase(BaseModel):
  """Common configuration for messages received from the service."""

  model_config = ConfigDict(extra="ignore", frozen=True)


class BeginMessage(InboundBase):
  """Session acknowledgement; audio may be sent once this arrives."""

  type: Literal["Begin"] = "Begin"
  id: str = Field(description="Service-assigned session identifier")
  expires_at: int | None = Field(default=None, description="Unix time the session expires")


class Word(InboundBase):
  """One recognized word inside a turn."""

  text: str
  start: int | None = Field(default=None, description="Start offset in milliseconds")
  end: int | None = Field(default=None, description="End offset in milliseconds")
  confidence: float | None = Field(default=None, ge=0.0, le=1.0)
  word_is_final: bool = True


class TurnMessage(InboundBase):
  """A span of recognized speech, interim or final."""

  type: Literal["Turn"] = "Turn"
  transcript: str = ""
  turn_order: int = 0
  turn_is_formatted: bool = False
  end_of_turn: bool = False
  end_of_turn_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
  words: list[Word] | None = None
  speaker: str | None = Field(
    default=None,
    validation_alias=AliasChoices("speaker", "speaker_label"),
    description="Speaker attribution, when the service supplies one",
  )


class TerminationMessage(InboundBase):
  """The service has finished the session; no further turns follow."""

  type: Literal["Termination"] = "Termination"
  audio_duration_seconds: float | None = None
  session_duration_seconds: float | None = None


class UnknownMessage(InboundBase):
  """Any message whose type this client does not understand."""

  type: str
  payload: dict[str, Any] = Field(default_factory=dict)


class TerminateRequest(BaseModel):
  """Outbound control message asking the service to flush and end the session."""

  type: Literal["Terminate"] = "Terminate"
