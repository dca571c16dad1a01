"""
Records produced by a recording session.

Turns are immutable once received. Participants are the one mutable record: their running
counters change while the session is live and are copied into the final transcript at stop.
"""

from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from transcord.wire import TurnMessage, Word


class TranscriptTurn(BaseModel):
  """One span of recognized speech, in the order it was received."""

  model_config = ConfigDict(frozen=True)

  text: str
  received_at: datetime
  turn_order: int
  turn_is_formatted: bool = False
  end_of_turn: bool = False
  confidence: float | None = Field(default=None, ge=0.0, le=1.0)
  """End-of-turn confidence reported by the service, when present."""

  words: tuple[Word, ...] | None = None
  speaker: str | None = None
  """Speaker attribution. Best-effort: the service does not always supply one."""

  @classmethod
  def from_message(cls, message: TurnMessage, received_at: datetime) -> "TranscriptTurn":
    return cls(
      text=message.transcript,
      received_at=received_at,
      turn_order=message.turn_order,
      turn_is_formatted=message.turn_is_formatted,
      end_of_turn=message.end_of_turn,
      confidence=message.end_of_turn_confidence,
      words=tuple(message.words) if message.words is not None else None,
      speaker=message.speaker,
    )

  @property
  def word_count(self) -> int:
    """Number of words in the word breakdown, or whitespace-split words when there is none."""
    if self.words is not None:
      return len(self.words)
    return len(self.text.split())


class Participant(BaseModel):
  """A speaker tracked within a session."""

  id: str
  display_name: str | None = None
  joined_at: datetime
  left_at: datetime | None = None
  word_count: int = 0
  turn_count: int = 0
  stream_failed: bool = False
  """The participant's audio stream failed and was dropped."""
  subscribed: bool = True
  """The participant's audio was subscribed at least once during the session."""

  @property
  def name(self) -> str:
    return self.display_name or self.id


class TranscriptStatistics(BaseModel):
  model_config = ConfigDict(frozen=True)

  total_words: int = 0
  participant_count: int = 0
  turn_count: int = 0
  average_confidence: float = 0.0
  speakers_attributed: bool = False
  """Whether participant_count came from speaker attribution rather than the subscription count."""

  @classmethod
  def from_turns(
    cls, turns: Sequence[TranscriptTurn], subscribed_count: int
  ) -> "TranscriptStatistics":
    """
    Aggregate turn-level data.

    :param
        turns: Received turns, in receipt order.
        subscribed_count: Number of participants whose audio was ever subscribed. Used as the
                          participant count when no turn carries a speaker.
    """
    speakers = {turn.speaker for turn in turns if turn.speaker}
    confidences = [turn.confidence for turn in turns if turn.confidence is not None]

    return cls(
      total_words=sum(turn.word_count for turn in turns),
      participant_count=len(speakers) if speakers else subscribed_count,
      turn_count=len(turns),
      average_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
      speakers_attributed=bool(speakers),
    )


def combine_turn_text(turns: Sequence[TranscriptTurn]) -> str:
  """Space-join turn texts in receipt order."""
  return " ".join(turn.text for turn in turns).strip()


class FinalTranscript(BaseModel):
  """The artifact produced exactly once when a session stops."""

  model_config = ConfigDict(frozen=True)

  session_id: str
  service_session_id: str | None = None
  combined_text: str
  turns: tuple[TranscriptTurn, ...]
  participants: tuple[Participant, ...]
  statistics: TranscriptStatistics
  started_at: datetime
  ended_at: datetime
  abnormal_close: bool = False
  """The transport closed unexpectedly; the transcript holds only turns received before that."""

  recording_path: Path | None = None
  """WAV side-recording, when recording to disk was enabled."""

  @property
  def duration(self) -> float:
    """Session duration in seconds."""
    return (self.ended_at - self.started_at).total_seconds()

  @property
  def is_empty(self) -> bool:
    """No speech was recognized at all."""
    return not self.combined_text

  @classmethod
  def assemble(
    cls,
    session_id: str,
    turns: Sequence[TranscriptTurn],
    participants: Sequence[Participant],
    started_at: datetime,
    ended_at: datetime,
    service_session_id: str | None = None,
    abnormal_close: bool = False,
  ) -> "FinalTranscript":
    return cls(
      session_id=session_id,
      service_session_id=service_session_id,
      combined_text=combine_turn_text(turns),
      turns=tuple(turns),
      participants=tuple(participant.model_copy() for participant in participants),
      statistics=TranscriptStatistics.from_turns(
        turns, sum(1 for participant in participants if participant.subscribed)
      ),
      started_at=started_at,
      ended_at=ended_at,
      abnormal_close=abnormal_close,
    )
