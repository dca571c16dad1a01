"""
Voice source backed by a py-cord voice client.

py-cord decodes each speaker's Opus stream on its own receive thread and hands the PCM to a sink.
The sink here forwards every write onto the event loop, into one queue per subscribed user.
"""

import asyncio

import discord
from discord.sinks import Sink

from transcord.logs import get_logger
from transcord.streaming.interfaces import PacketStream

logger = get_logger("voice/discord")


class QueueSink(Sink):
  """Sink that hands decoded PCM to the owning voice source instead of buffering it."""

  def __init__(self, source: "PycordVoiceSource") -> None:
    super().__init__()
    self.source = source

  def write(self, data: bytes, user: int) -> None:
    # Called on py-cord's receive thread
    self.source.loop.call_soon_threadsafe(self.source.deliver, str(user), bytes(data))


class PycordVoiceSource:
  """
  Voice source for a connected :class:`discord.VoiceClient`.

  Audio arrives already decoded (48 kHz stereo pcm_s16le), so participants should be reframed with
  PCM passthrough decoding.
  """

  def __init__(self, voice_client: discord.VoiceClient, loop: asyncio.AbstractEventLoop) -> None:
    self.voice_client = voice_client
    self.loop = loop
    self.sink = QueueSink(self)
    self._queues: dict[str, asyncio.Queue[bytes | None]] = {}

  def start(self) -> None:
    """Begin receiving audio from the voice channel."""
    self.voice_client.start_recording(self.sink, self._recording_finished)
    logger.info("Receiving voice audio", channel=str(self.voice_client.channel))

  def stop(self) -> None:
    """Stop receiving audio and end every participant stream."""
    if self.voice_client.recording:
      self.voice_client.stop_recording()
    for participant_id in list(self._queues):
      self.unsubscribe(participant_id)

  def deliver(self, participant_id: str, pcm: bytes) -> None:
    queue = self._queues.get(participant_id)
    if queue is not None:
      queue.put_nowait(pcm)

  def subscribe(self, participant_id: str) -> PacketStream:
    queue: asyncio.Queue[bytes | None] = asyncio.Queue()
    self._queues[participant_id] = queue
    return self._packets(queue)

  def unsubscribe(self, participant_id: str) -> None:
    queue = self._queues.pop(participant_id, None)
    if queue is not None:
      queue.put_nowait(None)

  def display_name(self, participant_id: str) -> str | None:
    guild = getattr(self.voice_client.channel, "guild", None)
    if guild is None:
      return None
    member = guild.get_member(int(participant_id))
    return member.display_name if member else None

  def participant_ids(self) -> list[str]:
    """Everyone in the voice channel except bots."""
    members = getattr(self.voice_client.channel, "members", [])
    return [str(member.id) for member in members if not member.bot]

  async def _packets(self, queue: "asyncio.Queue[bytes | None]") -> PacketStream:
    while (packet := await queue.get()) is not None:
      yield packet

  async def _recording_finished(self, _sink: Sink, *_args) -> None:
    logger.info("Voice recording finished")
