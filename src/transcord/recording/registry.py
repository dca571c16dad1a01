"""
Session registry: the process's table of recording sessions.

The registry is the only owner of session entries; sessions are inserted only after the speech
service has acknowledged them and removed when they stop. Only one recording may be in flight at a
time. The registry is an ordinary object, constructed once by the application and passed to
whoever needs it.
"""

import time
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from transcord.audio.reframer import AudioReframer, PacketDecoder
from transcord.audio.vad import VoiceActivityEstimator
from transcord.audio.wav import RECORDING_ERRORS, WavRecorder
from transcord.config import TranscordConfig
from transcord.errors import AlreadyRecording, SessionNotActive, SessionNotFound, TranscordError
from transcord.logs import get_logger
from transcord.recording.models import FinalTranscript
from transcord.recording.participant import ParticipantStream
from transcord.streaming.interfaces import ConnectFactory, VoiceSource
from transcord.streaming.session import TranscriptionSession

DRAIN_TIMEOUT = 2.0
"""Seconds a participant pump gets to flush after its packet stream is ended."""


def make_session_id(context_id: str) -> str:
  """Session identifier from the calling context (a guild, a CLI run) and the current time."""
  return f"{context_id}_{int(time.time() * 1000)}"


class SessionStatus(BaseModel):
  """Snapshot of the in-flight recording, for status reporting."""

  model_config = ConfigDict(frozen=True)

  session_id: str
  active: bool
  state: str
  participant_count: int
  participant_ids: list[str]
  speaking: list[str]
  elapsed: float
  """Seconds since the session was registered."""

  service_session_id: str | None = None
  expires_at: int | None = None
  connected: bool = False
  transcript_count: int = 0
  frames_sent: int = 0
  frames_dropped: int = 0
  last_activity: datetime | None = None


class RegisteredSession:
  """A transcription session plus the audio subscriptions bound to it."""

  def __init__(
    self,
    session: TranscriptionSession,
    voice_source: VoiceSource,
    vad: VoiceActivityEstimator,
    recorder: WavRecorder | None,
  ) -> None:
    self.session = session
    self.voice_source = voice_source
    self.vad = vad
    self.recorder = recorder
    self.streams: dict[str, ParticipantStream] = {}
    self.registered_at = time.monotonic()

  @property
  def session_id(self) -> str:
    return self.session.session_id


class SessionRegistry:
  """
  Owns every live recording session.

  Operations on one session are expected to be issued one at a time by the orchestrator;
  concurrent add/remove calls against the same session are not supported.
  """

  def __init__(
    self,
    config: TranscordConfig,
    connect: ConnectFactory | None = None,
    decoder_factory: Callable[[], PacketDecoder] | None = None,
  ) -> None:
    """
    :param
        config: Application configuration; validated for recording on every start.
        connect: Connection factory handed to each transcription session.
        decoder_factory: Builds a packet decoder per participant. Defaults to PCM passthrough.
    """
    self.config = config
    self.connect = connect
    self.decoder_factory = decoder_factory
    self.sessions: dict[str, RegisteredSession] = {}
    self._starting: str | None = None
    self.logger = get_logger("rec/registry")

  def active_session_id(self) -> str | None:
    """The session currently recording (or being started), if any."""
    if self._starting is not None:
      return self._starting
    return next(iter(self.sessions), None)

  def get(self, session_id: str) -> TranscriptionSession:
    return self._entry(session_id).session

  def _entry(self, session_id: str) -> RegisteredSession:
    entry = self.sessions.get(session_id)
    if entry is None:
      raise SessionNotFound(session_id)
    return entry

  def _active_entry(self, session_id: str) -> RegisteredSession:
    entry = self._entry(session_id)
    if not entry.session.is_active:
      raise SessionNotActive(session_id, entry.session.state.value)
    return entry

  async def start(
    self, session_id: str, voice_source: VoiceSource, participant_ids: list[str]
  ) -> TranscriptionSession:
    """
    Open a transcription session, subscribe participants and register it.

    :raises AlreadyRecording: when another session is in flight. That session is left untouched.
    :raises ConfigurationError: when the configuration cannot support recording.
    :raises SessionConnectionError: when the speech service cannot be reached or does not
      acknowledge the session. Nothing is registered in that case.
    """
    active = self.active_session_id()
    if active is not None:
      self.logger.warning("Recording already in progress", requested=session_id, active=active)
      raise AlreadyRecording(active)

    self.config.validate_for_recording()

    self._starting = session_id
    try:
      session = TranscriptionSession(
        session_id,
        self.config.streaming,
        self.config.audio.sample_rate,
        connect=self.connect,
      )
      await session.open()
    finally:
      self._starting = None

    recorder = None
    if self.config.recording.save_to_disk:
      recorder = WavRecorder(
        self.config.recording.recordings_dir,
        session_id,
        self.config.audio.target_channels,
        self.config.audio.sample_rate,
      )
      try:
        recorder.open()
      except RECORDING_ERRORS:
        self.logger.exception("Cannot record to disk; continuing without it", session=session_id)
        recorder = None

    vad = VoiceActivityEstimator(self.config.vad)
    entry = RegisteredSession(session, voice_source, vad, recorder)
    self.sessions[session_id] = entry

    for participant_id in participant_ids:
      self._subscribe(entry, participant_id)

    self.logger.info(
      "Recording started",
      session=session_id,
      participants=len(entry.streams),
      requested=len(participant_ids),
    )
    return session

  async def add_participant(self, session_id: str, participant_id: str) -> bool:
    """
    Subscribe one more participant to a live session.

    Adding a participant who is already subscribed is a successful no-op.

    :returns:
        True if the participant's audio is subscribed afterwards.
    """
    entry = self._active_entry(session_id)

    stream = entry.streams.get(participant_id)
    if stream is not None and stream.task is not None and not stream.task.done():
      self.logger.debug(
        "Participant already subscribed", session=session_id, participant=participant_id
      )
      return True

    return self._subscribe(entry, participant_id)

  async def remove_participant(self, session_id: str, participant_id: str) -> bool:
    """
    Unsubscribe a participant from a live session, flushing their buffered audio first.

    :returns:
        False if the participant was not subscribed.
    """
    entry = self._active_entry(session_id)

    if participant_id not in entry.streams:
      self.logger.warning(
        "Participant not subscribed", session=session_id, participant=participant_id
      )
      return False

    await self._unsubscribe(entry, participant_id)
    self.logger.info(
      "Participant removed",
      session=session_id,
      participant=participant_id,
      remaining=len(entry.streams),
    )
    return True

  async def stop(self, session_id: str) -> FinalTranscript:
    """
    Stop a session and remove it from the registry.

    Subscriptions are torn down first so every participant's final partial frame reaches the
    speech service before it is asked to terminate.

    :raises SessionNotFound: when no such session is registered.
    """
    entry = self._entry(session_id)
    self.logger.info("Stopping recording", session=session_id, participants=len(entry.streams))

    try:
      for participant_id in list(entry.streams):
        await self._unsubscribe(entry, participant_id)

      transcript = await entry.session.stop()

      if entry.recorder is not None:
        try:
          recording_path = entry.recorder.finalize()
        except RECORDING_ERRORS:
          self.logger.exception("Failed to finalize recording", session=session_id)
        else:
          transcript = transcript.model_copy(update={"recording_path": recording_path})

    finally:
      entry.vad.close()
      self.sessions.pop(session_id, None)

    self.logger.info("Recording stopped", session=session_id, registered=len(self.sessions))
    return transcript

  def current_status(self) -> SessionStatus | None:
    """Snapshot of the single in-flight session, or None when nothing is recording."""
    entry = next(iter(self.sessions.values()), None)
    if entry is None:
      return None

    session = entry.session
    return SessionStatus(
      session_id=session.session_id,
      active=session.is_active,
      state=session.state.value,
      participant_count=len(entry.streams),
      participant_ids=list(entry.streams),
      speaking=entry.vad.speaking_participants(),
      elapsed=time.monotonic() - entry.registered_at,
      service_session_id=session.service_session_id,
      expires_at=session.expires_at,
      connected=session.connected,
      transcript_count=len(session.turns),
      frames_sent=session.frames_sent,
      frames_dropped=session.frames_dropped,
      last_activity=session.last_activity,
    )

  async def shutdown(self) -> list[FinalTranscript]:
    """
    Stop every registered session, e.g. when the process exits.

    A session that fails to stop is logged and removed; the others are still stopped.
    """
    transcripts = []
    for session_id in list(self.sessions):
      try:
        transcripts.append(await self.stop(session_id))
      except TranscordError:
        self.logger.exception("Session did not stop cleanly", session=session_id)
    self.logger.info("Registry shut down", stopped=len(transcripts))
    return transcripts

  def _subscribe(self, entry: RegisteredSession, participant_id: str) -> bool:
    logger = self.logger.bind(session=entry.session_id, participant=participant_id)

    try:
      decoder = self.decoder_factory() if self.decoder_factory else None
      display_name = entry.voice_source.display_name(participant_id)
      packets = entry.voice_source.subscribe(participant_id)
    except Exception:
      logger.exception("Failed to subscribe participant audio")
      participant = entry.session.add_participant(participant_id, subscribed=False)
      participant.stream_failed = True
      return False

    entry.session.add_participant(participant_id, display_name)
    stream = ParticipantStream(
      participant_id,
      packets,
      entry.session,
      AudioReframer(participant_id, self.config.audio, decoder),
      entry.vad,
      recorder=entry.recorder,
      no_audio_warning=self.config.audio.no_audio_warning,
    )
    entry.streams[participant_id] = stream
    stream.start()

    logger.info("Participant subscribed", name=display_name)
    return True

  async def _unsubscribe(self, entry: RegisteredSession, participant_id: str) -> None:
    stream = entry.streams.pop(participant_id)
    try:
      entry.voice_source.unsubscribe(participant_id)
    except Exception:
      self.logger.exception(
        "Failed to unsubscribe participant audio",
        session=entry.session_id,
        participant=participant_id,
      )

    await stream.wait_closed(DRAIN_TIMEOUT)
    entry.session.remove_participant(participant_id)
    entry.vad.forget(participant_id)
