"""
Protocol interfaces for the streaming pipeline.

Defines the contracts for voice sources that supply per-participant packets, the transport to the
speech service, and observers of recognized turns.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING, Protocol, TypeAlias

if TYPE_CHECKING:
  from transcord.recording.models import TranscriptTurn

PacketStream: TypeAlias = AsyncIterator[bytes]
"""Compressed (or raw) audio packets for one participant, ending when their stream ends."""

TurnListener: TypeAlias = Callable[["TranscriptTurn"], None]
"""Called synchronously, in receipt order, for every appended turn."""


class VoiceSource(Protocol):
  """
  Protocol for a voice-channel connection.

  Implementations hand out one packet stream per participant.
  """

  def subscribe(self, participant_id: str) -> PacketStream:
    """
    Start receiving a participant's audio.

    :param
        participant_id: Stable voice-source user id.

    :returns:
        An async iterator of packets for that participant.
    """
    ...

  def unsubscribe(self, participant_id: str) -> None:
    """Stop receiving a participant's audio; their packet stream ends."""
    ...

  def display_name(self, participant_id: str) -> str | None:
    """Human-readable name for a participant, when the source knows it."""
    ...


class StreamConnection(Protocol):
  """The subset of a websockets client connection the transcription session uses."""

  async def send(self, message: str | bytes) -> None: ...

  async def close(self, code: int = 1000, reason: str = "") -> None: ...

  def __aiter__(self) -> AsyncIterator[str | bytes]: ...


ConnectFactory: TypeAlias = Callable[[str, dict[str, str]], Awaitable[StreamConnection]]
"""Opens a connection given the endpoint URL and request headers."""
