"""Tests for summaries: fallback content, validation and the Gemini adapter."""

import json
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
from google.genai import errors as genai_errors

from transcord.config import SummaryConfig
from transcord.errors import ConfigurationError, SummaryError
from transcord.format import format_duration
from transcord.recording.models import FinalTranscript, Participant, TranscriptTurn
from transcord.summary import (
  MeetingInfo,
  SummaryContent,
  create_fallback_summary,
  validate_summary,
)
from transcord.summary.gemini import GeminiSummarizer, build_prompt

STARTED = datetime(2025, 3, 1, 15, 0, tzinfo=UTC)


def make_transcript(texts=("we ship on friday", "sounds good"), confidence=0.8, seconds=125):
  turns = [
    TranscriptTurn(
      text=text,
      received_at=STARTED + timedelta(seconds=index),
      turn_order=index,
      confidence=confidence,
    )
    for index, text in enumerate(texts)
  ]
  participants = [
    Participant(id="alice", display_name="Alice", joined_at=STARTED),
    Participant(id="bob", display_name="Bob", joined_at=STARTED),
  ]
  return FinalTranscript.assemble(
    session_id="guild_1",
    turns=turns,
    participants=participants,
    started_at=STARTED,
    ended_at=STARTED + timedelta(seconds=seconds),
  )


class FakeModels:
  def __init__(self, response=None, error=None):
    self.response = response
    self.error = error
    self.requests = []

  async def generate_content(self, model, contents, config):
    self.requests.append({"model": model, "contents": contents, "config": config})
    if self.error is not None:
      raise self.error
    return self.response


def make_summarizer(response=None, error=None, **config):
  models = FakeModels(response, error)
  client = SimpleNamespace(aio=SimpleNamespace(models=models))
  return GeminiSummarizer(SummaryConfig(api_key="gemini-key", **config), client=client), models


SUMMARY_JSON = {
  "overview": "The team agreed to ship the release on Friday.",
  "discussion_points": [{"title": "Release", "points": ["Ship on Friday"]}],
  "action_items": [{"description": "Write release notes", "owner": "Alice"}],
  "decisions": ["Ship on Friday"],
  "next_steps": ["Cut the branch"],
}


@pytest.mark.parametrize(
  "seconds,expected",
  [
    (3723, "1h 2m 3s"),
    (123, "2m 3s"),
    (3, "3s"),
    (0, "0 seconds"),
    (None, "0 seconds"),
  ],
)
def test_format_duration(seconds, expected):
  assert format_duration(seconds) == expected


def test_fallback_summary_reports_statistics():
  transcript = make_transcript()
  meeting = MeetingInfo.from_transcript(transcript)

  summary = create_fallback_summary(transcript, meeting, "quota exhausted")

  assert summary.is_fallback
  assert summary.generated_by == "fallback"
  assert summary.error == "quota exhausted"
  assert summary.overview == (
    "Meeting with 2 participants (Alice, Bob). "
    "Total discussion contained 6 words over 2m 5s. "
    "AI summary generation failed: quota exhausted"
  )
  assert "Average transcription confidence: 80%" in summary.discussion_points[0].points
  assert summary.action_items[0].description == "Review raw transcript for specific action items"


def test_validation_flags_short_overview():
  transcript = make_transcript()
  summary = create_fallback_summary(
    transcript, MeetingInfo.from_transcript(transcript), "boom"
  ).model_copy(update={"overview": "short", "discussion_points": []})

  validation = validate_summary(summary)

  assert not validation.is_valid
  assert validation.errors == ["Overview is missing or too short"]
  assert "No key discussion points identified" in validation.warnings
  assert "Summary was generated using fallback method" in validation.warnings


def test_validation_accepts_fallback_with_warning():
  transcript = make_transcript()
  summary = create_fallback_summary(transcript, MeetingInfo.from_transcript(transcript), "boom")

  validation = validate_summary(summary)

  assert validation.is_valid
  assert validation.warnings == ["Summary was generated using fallback method"]


def test_prompt_carries_transcript_and_context():
  transcript = make_transcript()
  prompt = build_prompt(transcript, MeetingInfo.from_transcript(transcript))

  assert "we ship on friday sounds good" in prompt
  assert "- Participants: Alice, Bob" in prompt
  assert "- Total words: 6" in prompt
  assert "- Meeting duration: 2m 5s" in prompt


def test_gemini_requires_api_key(monkeypatch):
  monkeypatch.delenv("GEMINI_API_KEY", raising=False)
  with pytest.raises(ConfigurationError):
    GeminiSummarizer(SummaryConfig())


def test_model_selection_by_transcript_size():
  summarizer, _ = make_summarizer(model="small", large_model="large", large_input_threshold=100)
  assert summarizer.select_model(100) == "small"
  assert summarizer.select_model(101) == "large"


@pytest.mark.asyncio
async def test_gemini_summary_from_parsed_response():
  response = SimpleNamespace(parsed=SummaryContent.model_validate(SUMMARY_JSON), text=None)
  summarizer, models = make_summarizer(response, model="small")
  transcript = make_transcript()

  summary = await summarizer.summarize(transcript, MeetingInfo.from_transcript(transcript))

  assert summary.overview == SUMMARY_JSON["overview"]
  assert summary.action_items[0].owner == "Alice"
  assert summary.generated_by == "gemini"
  assert summary.model == "small"
  assert not summary.is_fallback
  assert models.requests[0]["model"] == "small"
  assert models.requests[0]["config"].response_mime_type == "application/json"


@pytest.mark.asyncio
async def test_gemini_summary_from_json_text():
  response = SimpleNamespace(parsed=None, text=json.dumps(SUMMARY_JSON))
  summarizer, _ = make_summarizer(response)
  transcript = make_transcript()

  summary = await summarizer.summarize(transcript, MeetingInfo.from_transcript(transcript))

  assert summary.decisions == ["Ship on Friday"]


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [None, "", "   ", "not json", '{"decisions": []}'])
async def test_gemini_unusable_response(text):
  summarizer, _ = make_summarizer(SimpleNamespace(parsed=None, text=text))
  transcript = make_transcript()

  with pytest.raises(SummaryError):
    await summarizer.summarize(transcript, MeetingInfo.from_transcript(transcript))


@pytest.mark.asyncio
async def test_gemini_api_error_is_wrapped():
  error = genai_errors.APIError(500, {"error": {"message": "backend down", "status": "INTERNAL"}})
  summarizer, _ = make_summarizer(error=error)
  transcript = make_transcript()

  with pytest.raises(SummaryError):
    await summarizer.summarize(transcript, MeetingInfo.from_transcript(transcript))


@pytest.mark.asyncio
async def test_gemini_refuses_empty_transcript():
  summarizer, models = make_summarizer(SimpleNamespace(parsed=None, text="{}"))
  transcript = make_transcript(texts=())

  with pytest.raises(SummaryError):
    await summarizer.summarize(transcript, MeetingInfo.from_transcript(transcript))
  assert models.requests == []
