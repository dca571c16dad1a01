"""Meeting summary records and the summarizer contract."""

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, ConfigDict, Field

from transcord.format import format_duration

if TYPE_CHECKING:
  from transcord.recording.models import FinalTranscript


class DiscussionSection(BaseModel):
  title: str = Field(description="Short topic heading")
  points: list[str] = Field(default_factory=list, description="Key points raised on this topic")


class ActionItem(BaseModel):
  description: str = Field(description="What needs to be done")
  owner: str | None = Field(default=None, description="Who agreed to do it, if stated")


class SummaryContent(BaseModel):
  """The structured part of a summary, as produced by the language model."""

  overview: str = Field(description="Two to four sentence overview of the meeting")
  discussion_points: list[DiscussionSection] = Field(default_factory=list)
  action_items: list[ActionItem] = Field(default_factory=list)
  decisions: list[str] = Field(default_factory=list)
  next_steps: list[str] = Field(default_factory=list)


class MeetingSummary(SummaryContent):
  """A summary ready for presentation."""

  model_config = ConfigDict(frozen=True)

  generated_at: datetime
  generated_by: str
  model: str | None = None
  is_fallback: bool = False
  error: str | None = None
  """Why the fallback was used, when it was."""


class MeetingInfo(BaseModel):
  """Meeting metadata passed to the summarizer alongside the transcript."""

  model_config = ConfigDict(frozen=True)

  session_id: str
  participant_names: list[str]
  started_at: datetime
  ended_at: datetime
  duration: float
  """Seconds."""

  @classmethod
  def from_transcript(cls, transcript: "FinalTranscript") -> "MeetingInfo":
    return cls(
      session_id=transcript.session_id,
      participant_names=[participant.name for participant in transcript.participants],
      started_at=transcript.started_at,
      ended_at=transcript.ended_at,
      duration=transcript.duration,
    )

  @property
  def duration_text(self) -> str:
    return format_duration(self.duration)


class Summarizer(Protocol):
  """
  Protocol for transcript summarizers.

  Implementations raise on failure; substituting a fallback summary is the caller's job.
  """

  async def summarize(self, transcript: "FinalTranscript", meeting: MeetingInfo) -> MeetingSummary:
    """
    Summarize a finished meeting.

    :param
        transcript: The final transcript; its combined text is not empty.
        meeting: Participants, timing and duration.
    """
    ...
