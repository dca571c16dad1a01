"""
Per-participant audio pump.

Each subscribed participant gets one task that pulls packets from the voice source, reframes
them, measures voice activity and forwards frames to the transcription session. Failures stay
inside the task: a broken stream is logged and dropped while the session carries on.
"""

import asyncio

from transcord.audio.reframer import AudioReframer, PacketDecodeError
from transcord.audio.vad import VoiceActivityEstimator
from transcord.audio.wav import RECORDING_ERRORS, WavRecorder
from transcord.format import Bytes
from transcord.logs import get_logger
from transcord.streaming.interfaces import PacketStream
from transcord.streaming.session import TranscriptionSession


class ParticipantStream:
  """Moves one participant's audio from the voice source into the transcription session."""

  def __init__(
    self,
    participant_id: str,
    packets: PacketStream,
    session: TranscriptionSession,
    reframer: AudioReframer,
    vad: VoiceActivityEstimator,
    recorder: WavRecorder | None = None,
    no_audio_warning: float = 10.0,
  ) -> None:
    self.participant_id = participant_id
    self.packets = packets
    self.session = session
    self.reframer = reframer
    self.vad = vad
    self.recorder = recorder
    self.no_audio_warning = no_audio_warning

    self.frames_forwarded = 0
    self.bytes_forwarded = 0
    self.failed = False
    self.task: asyncio.Task | None = None
    self._watchdog: asyncio.TimerHandle | None = None

    self.logger = get_logger("rec/pump").bind(
      session=session.session_id, participant=participant_id
    )

  def start(self) -> asyncio.Task:
    self.task = asyncio.create_task(self._run())
    self.task.set_name(f"participant_{self.session.session_id}_{self.participant_id}")
    return self.task

  async def wait_closed(self, timeout: float) -> None:
    """
    Wait for the pump to drain after its packet stream has been ended.

    The pump is cancelled if it has not finished within ``timeout``; in that case any partial
    frame still buffered is lost.
    """
    if self.task is None or self.task.done():
      return

    try:
      await asyncio.wait_for(asyncio.shield(self.task), timeout=timeout)
    except TimeoutError:
      self.logger.warning("Participant stream did not end; cancelling", timeout=timeout)
      self.task.cancel()
      try:
        await self.task
      except asyncio.CancelledError:
        pass

  async def _run(self) -> None:
    loop = asyncio.get_running_loop()
    self._watchdog = loop.call_later(self.no_audio_warning, self._warn_no_audio)
    self.logger.info("Participant stream started")

    try:
      async for packet in self.packets:
        try:
          frames = self.reframer.process(packet)
        except PacketDecodeError:
          self.logger.exception("Packet decode failed; dropping participant stream")
          self._mark_failed()
          return

        for frame in frames:
          await self._forward(frame)

      remainder = self.reframer.flush()
      if remainder:
        await self._forward(remainder)

    except asyncio.CancelledError:
      raise

    except Exception:
      self.logger.exception("Participant stream failed")
      self._mark_failed()
      return

    finally:
      self._cancel_watchdog()

    self.logger.info(
      "Participant stream ended",
      frames=self.frames_forwarded,
      sent=str(Bytes(self.bytes_forwarded)),
    )

  async def _forward(self, frame: bytes) -> None:
    if self.frames_forwarded == 0:
      self._cancel_watchdog()
      self.logger.info("First audio received", frame_bytes=len(frame))

    self.vad.observe(self.participant_id, frame)
    await self.session.send_audio_frame(frame)

    self.frames_forwarded += 1
    self.bytes_forwarded += len(frame)

    if self.recorder is not None:
      try:
        self.recorder.write(frame)
      except RECORDING_ERRORS as e:
        self.logger.warning("Disk recording failed; continuing without it", error=str(e))
        self.recorder = None

  def _mark_failed(self) -> None:
    self.failed = True
    participant = self.session.participants.get(self.participant_id)
    if participant is not None:
      participant.stream_failed = True

  def _warn_no_audio(self) -> None:
    self._watchdog = None
    if self.frames_forwarded == 0:
      self.logger.warning("No audio received from participant", waited=self.no_audio_warning)

  def _cancel_watchdog(self) -> None:
    if self._watchdog is not None:
      self._watchdog.cancel()
      self._watchdog = None
