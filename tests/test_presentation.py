"""Tests for the log presenter and the file replay voice source."""

import asyncio

import numpy as np
import pytest
from structlog.testing import capture_logs
from test_summary import make_transcript

from transcord.presentation import LogPresenter
from transcord.recording.orchestrator import MeetingOutcome, OutcomeKind
from transcord.summary import MeetingInfo, create_fallback_summary
from transcord.voice.files import FileVoiceSource


@pytest.mark.asyncio
async def test_presents_start_failure():
  with capture_logs() as logs:
    await LogPresenter().present(MeetingOutcome.start_failed(RuntimeError("no route")))

  assert logs[0]["event"] == "Recording failed to start"
  assert logs[0]["error"] == "no route"


@pytest.mark.asyncio
async def test_presents_no_speech():
  outcome = MeetingOutcome(
    kind=OutcomeKind.NO_SPEECH, session_id="guild_1", transcript=make_transcript(texts=())
  )
  with capture_logs() as logs:
    await LogPresenter().present(outcome)

  assert [log["event"] for log in logs] == ["No speech captured"]
  assert logs[0]["duration"] == "2m 5s"


@pytest.mark.asyncio
async def test_presents_fallback_summary():
  transcript = make_transcript()
  summary = create_fallback_summary(transcript, MeetingInfo.from_transcript(transcript), "boom")
  outcome = MeetingOutcome(
    kind=OutcomeKind.FALLBACK_SUMMARY,
    session_id="guild_1",
    transcript=transcript,
    summary=summary,
  )
  with capture_logs() as logs:
    await LogPresenter(include_transcript=False).present(outcome)

  events = [log["event"] for log in logs]
  assert events[0] == "Meeting transcribed"
  assert "Turn" not in events
  assert "Summary unavailable; showing statistics only" in events
  assert "Action item" in events
  assert logs[0]["words"] == 6


@pytest.mark.asyncio
async def test_file_source_replays_packets(tmp_path):
  path = tmp_path / "alice.pcm"
  # 50ms of stereo audio: two full 20ms packets and a 10ms tail
  path.write_bytes(np.zeros(2400 * 2, dtype="<i2").tobytes())
  source = FileVoiceSource({"alice": path}, sample_rate=48000, channels=2, realtime=False)

  packets = [packet async for packet in source.subscribe("alice")]
  await asyncio.wait_for(source.wait_finished(), timeout=1.0)

  assert [len(packet) for packet in packets] == [3840, 3840, 1920]
  assert source.display_name("alice") == "alice"


@pytest.mark.asyncio
async def test_file_source_stops_on_unsubscribe(tmp_path):
  path = tmp_path / "bob.pcm"
  path.write_bytes(np.zeros(48000 * 2, dtype="<i2").tobytes())
  source = FileVoiceSource({"bob": path}, sample_rate=48000, channels=2, realtime=False)

  stream = source.subscribe("bob")
  first = await anext(stream)
  source.unsubscribe("bob")
  rest = [packet async for packet in stream]

  assert len(first) == 3840
  assert len(rest) <= 1


def test_file_source_unknown_participant(tmp_path):
  source = FileVoiceSource({}, sample_rate=48000, channels=2)
  with pytest.raises(KeyError):
    source.subscribe("carol")
