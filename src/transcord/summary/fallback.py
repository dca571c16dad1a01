"""Statistics-only summaries, used when the summarizer is unavailable or fails."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from transcord.recording.models import FinalTranscript
from transcord.summary.models import ActionItem, DiscussionSection, MeetingInfo, MeetingSummary

FALLBACK_GENERATOR = "fallback"


def create_fallback_summary(
  transcript: FinalTranscript, meeting: MeetingInfo, error: str
) -> MeetingSummary:
  """Build a summary from transcript statistics alone."""
  stats = transcript.statistics
  names = ", ".join(meeting.participant_names) or "unknown participants"

  overview = (
    f"Meeting with {stats.participant_count} participants ({names}). "
    f"Total discussion contained {stats.total_words} words over {meeting.duration_text}. "
    f"AI summary generation failed: {error}"
  )

  return MeetingSummary(
    overview=overview,
    discussion_points=[
      DiscussionSection(
        title="Summary unavailable",
        points=[
          "AI summary generation unavailable",
          f"{stats.participant_count} participants contributed to the discussion",
          f"Average transcription confidence: {stats.average_confidence:.0%}",
        ],
      )
    ],
    action_items=[ActionItem(description="Review raw transcript for specific action items")],
    decisions=["Unable to identify decisions - review transcript"],
    next_steps=["Manual review of transcript recommended"],
    generated_at=datetime.now(UTC),
    generated_by=FALLBACK_GENERATOR,
    model=None,
    is_fallback=True,
    error=error,
  )


@dataclass
class SummaryValidation:
  errors: list[str] = field(default_factory=list)
  warnings: list[str] = field(default_factory=list)

  @property
  def is_valid(self) -> bool:
    return not self.errors


def validate_summary(summary: MeetingSummary) -> SummaryValidation:
  """Check a summary for missing or suspicious content before presenting it."""
  validation = SummaryValidation()

  if len(summary.overview.strip()) < 10:
    validation.errors.append("Overview is missing or too short")
  if len(summary.overview) > 1000:
    validation.warnings.append("Overview is unusually long")

  point_count = sum(len(section.points) for section in summary.discussion_points)
  if point_count == 0:
    validation.warnings.append("No key discussion points identified")
  elif point_count > 20:
    validation.warnings.append("Too many discussion points - summary may lack focus")

  if summary.is_fallback:
    validation.warnings.append("Summary was generated using fallback method")

  return validation
