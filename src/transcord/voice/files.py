"""Voice source that replays raw PCM files, one file per participant."""

import asyncio
from pathlib import Path

from transcord.constants import BYTES_PER_SAMPLE
from transcord.logs import get_logger
from transcord.streaming.interfaces import PacketStream

PACKET_MS = 20


class FileVoiceSource:
  """
  Replays headerless pcm_s16le files as if participants were speaking.

  Packets are 20ms long, matching what a chat voice connection delivers. In real-time mode each
  packet is paced to its duration; otherwise files are read as fast as the pipeline accepts them.
  """

  def __init__(
    self,
    files: dict[str, Path],
    sample_rate: int,
    channels: int,
    realtime: bool = True,
    names: dict[str, str] | None = None,
  ) -> None:
    self.files = files
    self.sample_rate = sample_rate
    self.channels = channels
    self.realtime = realtime
    self.names = names or {}
    self.packet_bytes = sample_rate * PACKET_MS // 1000 * channels * BYTES_PER_SAMPLE
    self._stopped: dict[str, asyncio.Event] = {}
    self._finished: dict[str, asyncio.Event] = {}
    self.logger = get_logger("voice/file")

  def subscribe(self, participant_id: str) -> PacketStream:
    path = self.files.get(participant_id)
    if path is None:
      raise KeyError(f"No audio file for participant {participant_id}")

    self._stopped[participant_id] = asyncio.Event()
    self._finished[participant_id] = asyncio.Event()
    return self._replay(participant_id, path)

  def unsubscribe(self, participant_id: str) -> None:
    stopped = self._stopped.get(participant_id)
    if stopped is not None:
      stopped.set()

  def display_name(self, participant_id: str) -> str | None:
    return self.names.get(participant_id, participant_id)

  async def wait_finished(self) -> None:
    """Wait until every subscribed file has been replayed to the end."""
    await asyncio.gather(*(event.wait() for event in self._finished.values()))

  async def _replay(self, participant_id: str, path: Path) -> PacketStream:
    stopped = self._stopped[participant_id]
    interval = PACKET_MS / 1000
    packets = 0

    try:
      with open(path, "rb") as file:
        while not stopped.is_set():
          packet = file.read(self.packet_bytes)
          if not packet:
            break
          packets += 1
          yield packet
          if self.realtime:
            await asyncio.sleep(interval)
          else:
            await asyncio.sleep(0)
    finally:
      self._finished[participant_id].set()
      self.logger.debug("Replay ended", participant=participant_id, packets=packets)
