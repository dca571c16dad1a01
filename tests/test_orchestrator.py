"""Tests for the recording orchestrator: outcomes, summaries and fallbacks."""

from datetime import UTC, datetime

import pytest
from conftest import wait_until

from transcord.errors import AlreadyRecording, SessionNotFound, SummaryError
from transcord.recording.orchestrator import (
  MeetingOutcome,
  OutcomeKind,
  RecordingOrchestrator,
  RecordingOutcome,
)
from transcord.recording.registry import SessionRegistry
from transcord.summary import MeetingSummary


class StubSummarizer:
  def __init__(self, summary: MeetingSummary | None = None, error: Exception | None = None):
    self.summary = summary
    self.error = error
    self.calls = []

  async def summarize(self, transcript, meeting):
    self.calls.append((transcript, meeting))
    if self.error is not None:
      raise self.error
    return self.summary


def make_summary(**overrides) -> MeetingSummary:
  fields = {
    "overview": "The team planned the release and agreed on owners.",
    "discussion_points": [{"title": "Release", "points": ["Ship on Friday"]}],
    "action_items": [{"description": "Write release notes", "owner": "Alice"}],
    "decisions": ["Ship on Friday"],
    "next_steps": ["Cut the release branch"],
    "generated_at": datetime.now(UTC),
    "generated_by": "stub",
  }
  fields.update(overrides)
  return MeetingSummary.model_validate(fields)


async def record(orchestrator, service, voice, turns):
  info = await orchestrator.begin(voice, ["alice", "bob"], context_id="guild")
  session = orchestrator.registry.get(info.session_id)
  for order, text in enumerate(turns):
    service.connection.push_turn(text, turn_order=order, confidence=0.8)
  await wait_until(lambda: len(session.turns) == len(turns))
  return info


@pytest.mark.asyncio
async def test_begin_reports_session_info(config, service, voice):
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service))

  info = await orchestrator.begin(voice, ["alice", "bob"], context_id="guild")

  assert info.session_id.startswith("guild_")
  assert info.participant_ids == ["alice", "bob"]
  assert info.participant_names == ["Alice", "Bob"]
  assert info.service_session_id == "svc-1"
  await orchestrator.end(info.session_id)


@pytest.mark.asyncio
async def test_begin_while_recording_is_rejected(config, service, voice):
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service))
  info = await orchestrator.begin(voice, ["alice"])

  with pytest.raises(AlreadyRecording):
    await orchestrator.begin(voice, ["bob"])

  result = await orchestrator.end(info.session_id)
  assert result.transcript.session_id == info.session_id


@pytest.mark.asyncio
async def test_end_without_speech(config, service, voice):
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service))
  info = await orchestrator.begin(voice, ["alice"])

  result = await orchestrator.end(info.session_id)

  assert result.outcome == RecordingOutcome.NO_SPEECH
  assert result.no_speech
  assert result.transcript.combined_text == ""
  assert result.transcript.statistics.total_words == 0


@pytest.mark.asyncio
async def test_end_with_speech(config, service, voice):
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service))
  info = await record(orchestrator, service, voice, ["good morning", "hello there"])

  result = await orchestrator.end(info.session_id)

  assert result.outcome == RecordingOutcome.CAPTURED
  assert result.transcript.combined_text == "good morning hello there"
  assert result.transcript.statistics.total_words == 4
  assert result.transcript.statistics.participant_count == 2


@pytest.mark.asyncio
async def test_end_unknown_session(config, service):
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service))
  with pytest.raises(SessionNotFound):
    await orchestrator.end("missing")


@pytest.mark.asyncio
async def test_conclude_without_speech_skips_summarizer(config, service, voice):
  summarizer = StubSummarizer(summary=make_summary())
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service), summarizer)
  info = await orchestrator.begin(voice, ["alice"])

  outcome = await orchestrator.conclude(info.session_id)

  assert outcome.kind == OutcomeKind.NO_SPEECH
  assert outcome.summary is None
  assert summarizer.calls == []


@pytest.mark.asyncio
async def test_conclude_with_summary(config, service, voice):
  summarizer = StubSummarizer(summary=make_summary())
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service), summarizer)
  info = await record(orchestrator, service, voice, ["we ship on friday"])

  outcome = await orchestrator.conclude(info.session_id)

  assert outcome.kind == OutcomeKind.SUCCESS
  assert outcome.summary.generated_by == "stub"
  assert outcome.transcript.combined_text == "we ship on friday"
  transcript, meeting = summarizer.calls[0]
  assert meeting.participant_names == ["Alice", "Bob"]
  assert meeting.session_id == info.session_id


@pytest.mark.asyncio
async def test_summarizer_failure_keeps_transcript(config, service, voice):
  summarizer = StubSummarizer(error=SummaryError("quota exhausted"))
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service), summarizer)
  info = await record(orchestrator, service, voice, ["we ship on friday"])

  outcome = await orchestrator.conclude(info.session_id)

  assert outcome.kind == OutcomeKind.FALLBACK_SUMMARY
  assert outcome.transcript.combined_text == "we ship on friday"
  assert outcome.summary.is_fallback
  assert "quota exhausted" in outcome.summary.overview
  assert outcome.summary.error == "quota exhausted"


@pytest.mark.asyncio
async def test_missing_summarizer_uses_fallback(config, service, voice):
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service))
  info = await record(orchestrator, service, voice, ["we ship on friday"])

  outcome = await orchestrator.conclude(info.session_id)

  assert outcome.kind == OutcomeKind.FALLBACK_SUMMARY
  assert outcome.summary.is_fallback


@pytest.mark.asyncio
async def test_invalid_summary_is_replaced(config, service, voice):
  summarizer = StubSummarizer(summary=make_summary(overview="ok"))
  orchestrator = RecordingOrchestrator(SessionRegistry(config, connect=service), summarizer)
  info = await record(orchestrator, service, voice, ["we ship on friday"])

  outcome = await orchestrator.conclude(info.session_id)

  assert outcome.kind == OutcomeKind.FALLBACK_SUMMARY
  assert "Overview is missing or too short" in outcome.summary.error


def test_start_failed_outcome():
  outcome = MeetingOutcome.start_failed(RuntimeError("no route"), session_id="guild_1")
  assert outcome.kind == OutcomeKind.START_FAILED
  assert outcome.error == "no route"
  assert outcome.transcript is None
