"""
Meeting summarization.

The summarizer is an external collaborator. When it fails, a fallback summary derived from the
transcript statistics is presented instead.
"""

from .fallback import SummaryValidation, create_fallback_summary, validate_summary
from .models import (
  ActionItem,
  DiscussionSection,
  MeetingInfo,
  MeetingSummary,
  Summarizer,
  SummaryContent,
)

__all__ = [
  "ActionItem",
  "DiscussionSection",
  "MeetingInfo",
  "MeetingSummary",
  "Summarizer",
  "SummaryContent",
  "SummaryValidation",
  "create_fallback_summary",
  "validate_summary",
]
