"""
Energy-based voice-activity estimation.

Purely observational: every frame is forwarded to the speech service whether or not it is judged
to contain speech. The estimator exists so logs and status snapshots can say who is talking.
"""

import asyncio
import time
from dataclasses import dataclass

import numpy as np

from transcord.config import VoiceActivityConfig
from transcord.constants import INT16_FULL_SCALE
from transcord.logs import get_logger


def compute_rms(frame: bytes) -> float:
  """
  Root-mean-square level of a pcm_s16le frame, normalized to [0, 1].

  An empty frame has level 0.
  """
  samples = np.frombuffer(frame, dtype="<i2")
  if samples.size == 0:
    return 0.0
  mean_square = np.mean(np.square(samples.astype(np.float64)))
  return min(float(np.sqrt(mean_square)) / INT16_FULL_SCALE, 1.0)


@dataclass
class ActivityState:
  speaking: bool = False
  last_spoke: float | None = None
  last_level: float = 0.0
  idle_handle: asyncio.TimerHandle | None = None


class VoiceActivityEstimator:
  """
  Tracks a speaking/silent flag per participant from frame energy.

  A frame above the threshold marks the participant speaking and (re)arms an idle timer; when the
  timer fires without being renewed the participant is marked silent. Must be used from inside a
  running event loop.
  """

  def __init__(self, config: VoiceActivityConfig) -> None:
    self.config = config
    self.states: dict[str, ActivityState] = {}
    self.logger = get_logger("snd/vad")

  def observe(self, participant_id: str, frame: bytes) -> float:
    """
    Measure one frame and update the participant's activity state.

    :returns:
        The frame's normalized RMS level.
    """
    level = compute_rms(frame)
    state = self.states.setdefault(participant_id, ActivityState())
    state.last_level = level

    if level <= self.config.threshold:
      return level

    state.last_spoke = time.time()
    if not state.speaking:
      state.speaking = True
      self.logger.info("Participant speaking", participant=participant_id, level=level)

    if state.idle_handle is not None:
      state.idle_handle.cancel()
    loop = asyncio.get_running_loop()
    state.idle_handle = loop.call_later(
      self.config.idle_timeout, self._mark_silent, participant_id
    )
    return level

  def _mark_silent(self, participant_id: str) -> None:
    state = self.states.get(participant_id)
    if state is None:
      return
    state.idle_handle = None
    if state.speaking:
      state.speaking = False
      self.logger.info(
        "Participant silent", participant=participant_id, idle_timeout=self.config.idle_timeout
      )

  def is_speaking(self, participant_id: str) -> bool:
    state = self.states.get(participant_id)
    return state.speaking if state else False

  def speaking_participants(self) -> list[str]:
    return [pid for pid, state in self.states.items() if state.speaking]

  def forget(self, participant_id: str) -> None:
    """Drop a participant's state and cancel any pending idle timer."""
    state = self.states.pop(participant_id, None)
    if state and state.idle_handle is not None:
      state.idle_handle.cancel()

  def close(self) -> None:
    """Cancel every idle timer."""
    for participant_id in list(self.states):
      self.forget(participant_id)
