"""
WAV side-recording of a session's outbound audio.

Every frame sent to the speech service is also written to ``<recordings_dir>/<session>.wav``
through libsndfile. The file is a canonical PCM_16 WAV: a 44-byte header followed by the frames
in the order they were sent.
"""

from pathlib import Path

import numpy as np
import soundfile as sf

from transcord.format import Bytes
from transcord.logs import get_logger

logger = get_logger("snd/wav")

RECORDING_ERRORS = (OSError, sf.SoundFileError)
"""What a failing disk or libsndfile raises from the recorder."""


class WavRecorder:
  """Writes the frames of one session into a WAV file as they are sent."""

  def __init__(self, directory: Path, session_id: str, channels: int, sample_rate: int) -> None:
    self.path = Path(directory) / f"{session_id}.wav"
    self.channels = channels
    self.sample_rate = sample_rate
    self.bytes_written = 0
    self._file: sf.SoundFile | None = None

  @property
  def is_open(self) -> bool:
    return self._file is not None

  def open(self) -> None:
    """
    Create the WAV file.

    :raises OSError: or :class:`soundfile.SoundFileError` when the file cannot be created.
    """
    self.path.parent.mkdir(parents=True, exist_ok=True)
    self._file = sf.SoundFile(
      self.path,
      mode="w",
      samplerate=self.sample_rate,
      channels=self.channels,
      format="WAV",
      subtype="PCM_16",
    )
    logger.debug("Recording to disk", path=str(self.path))

  def write(self, frame: bytes) -> None:
    """Append one frame of interleaved pcm_s16le. Ignored once the recorder is closed."""
    if self._file is None:
      return
    samples = np.frombuffer(frame, dtype="<i2").reshape(-1, self.channels)
    self._file.write(samples)
    self.bytes_written += len(frame)

  def finalize(self) -> Path | None:
    """Close the file so its header carries the final length. None if it was never opened."""
    if self._file is None:
      return None
    self._file.close()
    self._file = None
    logger.info("Recording finalized", path=str(self.path), size=str(Bytes(self.bytes_written)))
    return self.path
