"""Tests for WAV side-recording."""

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from transcord.audio.wav import RECORDING_ERRORS, WavRecorder


def test_recording_is_header_plus_frames(tmp_path):
  recorder = WavRecorder(tmp_path / "recordings", "guild_1", channels=1, sample_rate=48000)
  recorder.open()
  frames = [np.arange(100, dtype="<i2").tobytes(), np.full(50, -7, dtype="<i2").tobytes()]
  for frame in frames:
    recorder.write(frame)

  path = recorder.finalize()

  assert path == tmp_path / "recordings" / "guild_1.wav"
  assert path.stat().st_size == 300 + 44
  assert recorder.bytes_written == 300

  info = sf.info(path)
  assert (info.format, info.subtype) == ("WAV", "PCM_16")
  assert (info.samplerate, info.channels, info.frames) == (48000, 1, 150)

  samples, _ = sf.read(path, dtype="int16")
  assert samples.tobytes() == b"".join(frames)


def test_stereo_frames_keep_interleaving(tmp_path):
  recorder = WavRecorder(tmp_path, "stereo", channels=2, sample_rate=16000)
  recorder.open()
  recorder.write(np.array([1, -1, 2, -2], dtype="<i2").tobytes())

  samples, rate = sf.read(recorder.finalize(), dtype="int16")

  assert rate == 16000
  assert samples.tolist() == [[1, -1], [2, -2]]


def test_empty_recording_is_still_valid(tmp_path):
  recorder = WavRecorder(tmp_path, "quiet", channels=1, sample_rate=48000)
  recorder.open()

  path = recorder.finalize()

  assert path.stat().st_size == 44
  assert sf.info(path).frames == 0


def test_writes_after_finalize_are_ignored(tmp_path):
  recorder = WavRecorder(tmp_path, "done", channels=1, sample_rate=48000)
  recorder.open()
  recorder.finalize()

  recorder.write(b"\x00\x00")

  assert recorder.bytes_written == 0
  assert not recorder.is_open


def test_recorder_without_open_does_nothing():
  recorder = WavRecorder(Path("/nowhere"), "x", channels=1, sample_rate=48000)
  recorder.write(b"\x00\x00")
  assert recorder.finalize() is None


def test_unwritable_directory_raises_recording_error(tmp_path):
  blocker = tmp_path / "file"
  blocker.write_text("not a directory")
  recorder = WavRecorder(blocker / "recordings", "guild_1", channels=1, sample_rate=48000)

  with pytest.raises(RECORDING_ERRORS):
    recorder.open()
