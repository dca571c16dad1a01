"""
Presentation of meeting outcomes.

Chat-platform formatting lives outside this package; the presenter contract is the seam. The log
presenter writes the outcome as structured log events, which is what the command line uses.
"""

from typing import Protocol

from transcord.format import format_duration
from transcord.logs import get_logger
from transcord.recording.orchestrator import MeetingOutcome, OutcomeKind


class Presenter(Protocol):
  """Protocol for anything that shows a meeting outcome to people."""

  async def present(self, outcome: MeetingOutcome) -> None:
    """
    Deliver one outcome.

    :param
        outcome: Always definite: a transcript with a summary or fallback summary, a no-speech
                 result, or a failed start.
    """
    ...


class LogPresenter:
  """Writes outcomes to the structured log."""

  def __init__(self, include_transcript: bool = True) -> None:
    self.include_transcript = include_transcript
    self.logger = get_logger("present")

  async def present(self, outcome: MeetingOutcome) -> None:
    logger = self.logger.bind(session=outcome.session_id)

    match outcome.kind:
      case OutcomeKind.START_FAILED:
        logger.error("Recording failed to start", error=outcome.error)
        return

      case OutcomeKind.NO_SPEECH:
        duration = outcome.transcript.duration if outcome.transcript else 0
        logger.warning("No speech captured", duration=format_duration(duration))
        return

    transcript = outcome.transcript
    summary = outcome.summary
    assert transcript is not None and summary is not None

    stats = transcript.statistics
    logger.info(
      "Meeting transcribed",
      duration=format_duration(transcript.duration),
      words=stats.total_words,
      participants=stats.participant_count,
      confidence=stats.average_confidence,
      partial=transcript.abnormal_close,
      recording=str(transcript.recording_path) if transcript.recording_path else None,
    )

    if self.include_transcript:
      for turn in transcript.turns:
        logger.info("Turn", order=turn.turn_order, speaker=turn.speaker, text=turn.text)

    if summary.is_fallback:
      logger.warning("Summary unavailable; showing statistics only", error=summary.error)

    logger.info("Overview", text=summary.overview, generated_by=summary.generated_by)
    for section in summary.discussion_points:
      for point in section.points:
        logger.info("Discussion point", topic=section.title, point=point)
    for item in summary.action_items:
      logger.info("Action item", item=item.description, owner=item.owner)
    for decision in summary.decisions:
      logger.info("Decision", decision=decision)
    for step in summary.next_steps:
      logger.info("Next step", step=step)
