"""
Recording orchestrator: the use-case layer over the session registry.

Begins and ends recordings, classifies the result, and turns a finished transcript into a meeting
outcome with a summary. The presentation layer always receives a definite outcome, never an
exception.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from transcord.format import format_duration
from transcord.logs import get_logger
from transcord.recording.models import FinalTranscript
from transcord.recording.registry import SessionRegistry, make_session_id
from transcord.streaming.interfaces import VoiceSource
from transcord.summary import (
  MeetingInfo,
  MeetingSummary,
  Summarizer,
  create_fallback_summary,
  validate_summary,
)


class RecordingOutcome(StrEnum):
  CAPTURED = "captured"
  NO_SPEECH = "no_speech"


class OutcomeKind(StrEnum):
  SUCCESS = "success"
  """Transcript and summary."""

  FALLBACK_SUMMARY = "fallback_summary"
  """Transcript with a statistics-only summary because summarization failed."""

  NO_SPEECH = "no_speech"
  """The recording worked but nothing was said."""

  START_FAILED = "start_failed"
  """The recording never started."""


class SessionInfo(BaseModel):
  """What a caller needs to display after a recording begins."""

  model_config = ConfigDict(frozen=True)

  session_id: str
  participant_ids: list[str]
  participant_names: list[str]
  service_session_id: str | None = None
  expires_at: int | None = None


class RecordingResult(BaseModel):
  model_config = ConfigDict(frozen=True)

  transcript: FinalTranscript
  outcome: RecordingOutcome

  @property
  def no_speech(self) -> bool:
    return self.outcome == RecordingOutcome.NO_SPEECH


class MeetingOutcome(BaseModel):
  """Everything the presentation layer needs for one meeting."""

  model_config = ConfigDict(frozen=True)

  kind: OutcomeKind
  session_id: str | None = None
  transcript: FinalTranscript | None = None
  summary: MeetingSummary | None = None
  error: str | None = None

  @classmethod
  def start_failed(cls, error: Exception, session_id: str | None = None) -> "MeetingOutcome":
    return cls(kind=OutcomeKind.START_FAILED, session_id=session_id, error=str(error))


class RecordingOrchestrator:
  """Sequences recordings against a registry and hands results to the summarizer."""

  def __init__(self, registry: SessionRegistry, summarizer: Summarizer | None = None) -> None:
    """
    :param
        registry: The application's session registry.
        summarizer: Summary backend. Without one every captured meeting gets the fallback summary.
    """
    self.registry = registry
    self.summarizer = summarizer
    self.logger = get_logger("rec/orch")

  async def begin(
    self, voice_source: VoiceSource, participant_ids: list[str], context_id: str = "local"
  ) -> SessionInfo:
    """
    Start recording the given participants.

    :raises AlreadyRecording: when a recording is already in flight.
    :raises ConfigurationError: when the configuration cannot support recording.
    :raises SessionConnectionError: when the speech service cannot be reached.
    """
    session_id = make_session_id(context_id)
    session = await self.registry.start(session_id, voice_source, participant_ids)

    participants = list(session.participants.values())
    return SessionInfo(
      session_id=session_id,
      participant_ids=[participant.id for participant in participants],
      participant_names=[participant.name for participant in participants],
      service_session_id=session.service_session_id,
      expires_at=session.expires_at,
    )

  async def add_participant(self, session_id: str, participant_id: str) -> bool:
    return await self.registry.add_participant(session_id, participant_id)

  async def remove_participant(self, session_id: str, participant_id: str) -> bool:
    return await self.registry.remove_participant(session_id, participant_id)

  async def end(self, session_id: str) -> RecordingResult:
    """
    Stop a recording and classify what it captured.

    :raises SessionNotFound: when no such session is registered.
    """
    transcript = await self.registry.stop(session_id)
    stats = transcript.statistics

    if transcript.is_empty:
      self.logger.info(
        "No speech captured",
        session=session_id,
        duration=format_duration(transcript.duration),
        abnormal=transcript.abnormal_close,
      )
      return RecordingResult(transcript=transcript, outcome=RecordingOutcome.NO_SPEECH)

    if not stats.speakers_attributed:
      self.logger.debug(
        "Participant count taken from subscriptions", participants=stats.participant_count
      )

    self.logger.info(
      "Recording captured",
      session=session_id,
      words=stats.total_words,
      participants=stats.participant_count,
      confidence=stats.average_confidence,
      duration=format_duration(transcript.duration),
      abnormal=transcript.abnormal_close,
    )
    return RecordingResult(transcript=transcript, outcome=RecordingOutcome.CAPTURED)

  async def conclude(self, session_id: str) -> MeetingOutcome:
    """
    End a recording and summarize it.

    Summarizer failures never lose the transcript: a fallback summary is substituted.

    :raises SessionNotFound: when no such session is registered.
    """
    result = await self.end(session_id)

    if result.no_speech:
      return MeetingOutcome(
        kind=OutcomeKind.NO_SPEECH, session_id=session_id, transcript=result.transcript
      )

    summary, kind = await self.summarize(result.transcript)
    return MeetingOutcome(
      kind=kind, session_id=session_id, transcript=result.transcript, summary=summary
    )

  async def summarize(self, transcript: FinalTranscript) -> tuple[MeetingSummary, OutcomeKind]:
    meeting = MeetingInfo.from_transcript(transcript)

    if self.summarizer is None:
      summary = create_fallback_summary(transcript, meeting, "No summarizer configured")
      return summary, OutcomeKind.FALLBACK_SUMMARY

    try:
      summary = await self.summarizer.summarize(transcript, meeting)
    except Exception as e:
      self.logger.exception("Summarization failed; using fallback", session=transcript.session_id)
      return create_fallback_summary(transcript, meeting, str(e)), OutcomeKind.FALLBACK_SUMMARY

    validation = validate_summary(summary)
    for warning in validation.warnings:
      self.logger.warning("Summary warning", session=transcript.session_id, warning=warning)

    if not validation.is_valid:
      error = "; ".join(validation.errors)
      self.logger.error("Summary rejected", session=transcript.session_id, errors=error)
      return create_fallback_summary(transcript, meeting, error), OutcomeKind.FALLBACK_SUMMARY

    return summary, OutcomeKind.SUCCESS
