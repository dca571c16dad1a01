"""
Transcription session: one persistent WebSocket to the real-time speech service.

The session moves through ``connecting -> active -> terminating -> closed`` and never leaves
``closed``. Audio frames are sent as binary messages while active. Inbound JSON messages are
handled one at a time, in arrival order, by a single dispatch task; recognized turns are appended
to the session's turn list and then offered to any registered turn listeners.

A transport failure while active skips ``terminating`` entirely. Turns received before the failure
are kept, and the final transcript built from them is flagged as the result of an abnormal close.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from urllib.parse import urlencode

from websockets.asyncio.client import connect as websockets_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from transcord.config import StreamingConfig
from transcord.errors import AlreadyClosed, ConnectionTimeout, SessionConnectionError
from transcord.format import Bytes
from transcord.logs import get_logger
from transcord.recording.models import FinalTranscript, Participant, TranscriptTurn
from transcord.streaming.interfaces import ConnectFactory, StreamConnection, TurnListener
from transcord.wire import (
  BeginMessage,
  MessageDecodeError,
  TerminationMessage,
  TurnMessage,
  UnknownMessage,
  deserialize_message,
  terminate_request,
)


class SessionState(StrEnum):
  CONNECTING = "connecting"
  ACTIVE = "active"
  TERMINATING = "terminating"
  CLOSED = "closed"


def build_streaming_url(config: StreamingConfig, sample_rate: int) -> str:
  """Endpoint URL with the session parameters encoded in the query string."""
  params: dict[str, str | int | float] = {
    "sample_rate": sample_rate,
    "encoding": config.encoding,
    "format_turns": "true" if config.format_turns else "false",
  }
  if config.end_of_turn_confidence_threshold is not None:
    params["end_of_turn_confidence_threshold"] = config.end_of_turn_confidence_threshold
  return f"{config.url}?{urlencode(params)}"


async def connect_streaming_service(url: str, headers: dict[str, str]) -> StreamConnection:
  """Default connect factory: a websockets client connection with the auth header attached."""
  return await websockets_connect(url, additional_headers=headers, open_timeout=None)


def _utcnow() -> datetime:
  return datetime.now(UTC)


class TranscriptionSession:
  """
  Owns one streaming connection and the transcript it produces.

  Not safe to share across event loops. Frames may be sent concurrently from several
  participant tasks; everything else is expected to be driven by a single caller.
  """

  def __init__(
    self,
    session_id: str,
    config: StreamingConfig,
    sample_rate: int,
    connect: ConnectFactory | None = None,
  ) -> None:
    """
    :param
        session_id: Identifier for this recording, used in logs and the final transcript.
        config: Endpoint, credentials and timing.
        sample_rate: Sample rate announced to the service. Frames must match it.
        connect: Connection factory. Defaults to a real websockets connection.
    """
    self.session_id = session_id
    self.config = config
    self.sample_rate = sample_rate
    self._connect = connect or connect_streaming_service

    self.state = SessionState.CONNECTING
    self.turns: list[TranscriptTurn] = []
    self.participants: dict[str, Participant] = {}

    self.created_at = _utcnow()
    self.began_at: datetime | None = None
    self.last_activity: datetime | None = None
    self.service_session_id: str | None = None
    self.expires_at: int | None = None

    self.frames_sent = 0
    self.bytes_sent = 0
    self.frames_dropped = 0
    self.abnormal_close = False
    self._service_terminated = False

    self._connection: StreamConnection | None = None
    self._dispatch_task: asyncio.Task | None = None
    self._begin: asyncio.Future[BeginMessage] | None = None
    self._termination_received = asyncio.Event()
    self._listeners: list[TurnListener] = []
    self._stop_lock = asyncio.Lock()
    self._final: FinalTranscript | None = None

    self.logger = get_logger("ws/session").bind(session=session_id)

  @property
  def is_active(self) -> bool:
    return self.state == SessionState.ACTIVE

  @property
  def connected(self) -> bool:
    """Whether the service still considers the session open."""
    return self.is_active and not self._termination_received.is_set()

  # Lifecycle

  async def open(self) -> BeginMessage:
    """
    Connect and wait for the service to acknowledge the session.

    :returns:
        The service's Begin acknowledgement.

    :raises ConnectionTimeout: when no acknowledgement arrives within the handshake timeout. The
      socket is closed before this is raised.
    :raises SessionConnectionError: when the connection cannot be established or closes before
      the acknowledgement.
    """
    if self.state != SessionState.CONNECTING or self._connection is not None:
      raise SessionConnectionError(f"Session {self.session_id} has already been opened")

    if self.config.api_key is None:
      raise SessionConnectionError("Streaming API key not configured")

    url = build_streaming_url(self.config, self.sample_rate)
    headers = {"Authorization": self.config.api_key.get_secret_value()}
    self._begin = asyncio.get_running_loop().create_future()

    self.logger.info("Connecting to speech service", url=url, sample_rate=self.sample_rate)

    try:
      async with asyncio.timeout(self.config.handshake_timeout):
        self._connection = await self._connect(url, headers)
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        self._dispatch_task.set_name(f"transcription_dispatch_{self.session_id}")
        begin = await self._begin

    except asyncio.CancelledError:
      await self._abort()
      raise

    except TimeoutError as e:
      self.logger.error("Handshake timed out", timeout=self.config.handshake_timeout)
      await self._abort()
      raise ConnectionTimeout(self.session_id, self.config.handshake_timeout) from e

    except SessionConnectionError:
      await self._abort()
      raise

    except (OSError, WebSocketException) as e:
      self.logger.error("Connection failed", error=str(e))
      await self._abort()
      raise SessionConnectionError(f"Could not connect to speech service: {e}") from e

    self.logger.info("Session active", service_session=begin.id, expires_at=begin.expires_at)
    return begin

  async def stop(self) -> FinalTranscript:
    """
    End the session and return its final transcript.

    Sends the termination request, waits up to the grace period for trailing messages, then closes
    the transport regardless. Safe to call repeatedly: later calls return the transcript built by
    the first.

    :raises AlreadyClosed: when the session never became active, so no transcript exists.
    """
    async with self._stop_lock:
      if self._final is not None:
        self.logger.debug("Stop requested on stopped session; returning cached transcript")
        return self._final

      if self.began_at is None:
        await self._abort()
        raise AlreadyClosed(self.session_id)

      if self.state == SessionState.ACTIVE:
        await self._terminate_gracefully()
      else:
        self.logger.info("Stopping session after transport loss", state=self.state.value)

      await self._close_transport()
      self.state = SessionState.CLOSED

      self._final = FinalTranscript.assemble(
        session_id=self.session_id,
        turns=self.turns,
        participants=list(self.participants.values()),
        started_at=self.began_at,
        ended_at=_utcnow(),
        service_session_id=self.service_session_id,
        abnormal_close=self.abnormal_close,
      )

      stats = self._final.statistics
      self.logger.info(
        "Session closed",
        turns=stats.turn_count,
        words=stats.total_words,
        participants=stats.participant_count,
        confidence=stats.average_confidence,
        frames=self.frames_sent,
        sent=str(Bytes(self.bytes_sent)),
        abnormal=self.abnormal_close,
      )
      return self._final

  async def _terminate_gracefully(self) -> None:
    self.state = SessionState.TERMINATING
    self.logger.info("Requesting termination", grace=self.config.stop_grace_period)

    assert self._connection is not None
    try:
      await self._connection.send(terminate_request())
    except ConnectionClosed:
      self.logger.warning("Connection closed before termination request could be sent")
      return

    try:
      await asyncio.wait_for(
        self._termination_received.wait(), timeout=self.config.stop_grace_period
      )
    except TimeoutError:
      self.logger.debug("Grace period elapsed without termination acknowledgement")

  async def _close_transport(self) -> None:
    if self._connection is not None:
      await self._connection.close()

    if self._dispatch_task and not self._dispatch_task.done():
      self._dispatch_task.cancel()
      try:
        await self._dispatch_task
      except asyncio.CancelledError:
        pass

  async def _abort(self) -> None:
    """Release a connection that never became usable."""
    await self._close_transport()
    self._connection = None
    self.state = SessionState.CLOSED

  # Outbound audio

  async def send_audio_frame(self, frame: bytes) -> bool:
    """
    Send one PCM frame.

    Frames offered while the session is not active are dropped with a warning rather than raising,
    so a pump racing a stop does not fail.

    :returns:
        True if the frame was handed to the transport.
    """
    if self.state != SessionState.ACTIVE or self._connection is None:
      self._drop_frame("Session not active")
      return False

    try:
      await self._connection.send(frame)
    except ConnectionClosed:
      self._drop_frame("Connection closed")
      return False

    self.frames_sent += 1
    self.bytes_sent += len(frame)
    return True

  def _drop_frame(self, reason: str) -> None:
    self.frames_dropped += 1
    if self.frames_dropped == 1:
      self.logger.warning("Dropping audio frame", reason=reason, state=self.state.value)
    else:
      self.logger.debug("Dropping audio frame", reason=reason, dropped=self.frames_dropped)

  # Turn observers

  def on_turn(self, listener: TurnListener) -> Callable[[], None]:
    """
    Register a listener for appended turns.

    :returns:
        A callable that removes the listener again.
    """
    self._listeners.append(listener)

    def unsubscribe() -> None:
      if listener in self._listeners:
        self._listeners.remove(listener)

    return unsubscribe

  # Participants

  def add_participant(
    self, participant_id: str, display_name: str | None = None, subscribed: bool = True
  ) -> Participant:
    """
    Record a participant. A returning participant keeps their counters.

    :param
        subscribed: False when their audio could not be subscribed; such participants are not
                    counted as present in the transcript statistics.
    """
    participant = self.participants.get(participant_id)
    if participant is None:
      participant = Participant(
        id=participant_id, display_name=display_name, joined_at=_utcnow(), subscribed=subscribed
      )
      self.participants[participant_id] = participant
    else:
      participant.left_at = None
      participant.stream_failed = False
      participant.subscribed = participant.subscribed or subscribed
      if display_name:
        participant.display_name = display_name
    return participant

  def remove_participant(self, participant_id: str) -> None:
    participant = self.participants.get(participant_id)
    if participant is not None and participant.left_at is None:
      participant.left_at = _utcnow()

  # Inbound dispatch

  async def _dispatch_loop(self) -> None:
    assert self._connection is not None
    failure: Exception | None = None

    try:
      async for raw in self._connection:
        self._handle_frame(raw)
    except (OSError, WebSocketException) as e:
      failure = e
    finally:
      self._termination_received.set()

    self._on_transport_closed(failure)

  def _on_transport_closed(self, failure: Exception | None) -> None:
    if self.state == SessionState.CONNECTING:
      if self._begin and not self._begin.done():
        self._begin.set_exception(
          SessionConnectionError(f"Connection closed before acknowledgement: {failure}")
        )
      return

    if self.state != SessionState.ACTIVE:
      return

    # Anything other than the service finishing the session on its own is a failure
    if failure is not None or not self._service_terminated:
      self.abnormal_close = True
      self.logger.warning(
        "Transport closed while active",
        error=str(failure) if failure else None,
        turns=len(self.turns),
      )
    else:
      self.logger.info("Service ended the session", turns=len(self.turns))
    self.state = SessionState.CLOSED

  def _handle_frame(self, raw: str | bytes) -> None:
    if isinstance(raw, bytes):
      try:
        raw = raw.decode("utf-8")
      except UnicodeDecodeError:
        self.logger.warning("Ignoring binary frame from service", size=len(raw))
        return

    try:
      message = deserialize_message(raw)
    except (MessageDecodeError, ValueError) as e:
      self.logger.warning("Unparseable message from service", error=str(e))
      return

    match message:
      case BeginMessage() as begin:
        self._handle_begin(begin)

      case TurnMessage() as turn:
        self._handle_turn(turn)

      case TerminationMessage() as termination:
        self.logger.info(
          "Service terminated session",
          audio_duration=termination.audio_duration_seconds,
          session_duration=termination.session_duration_seconds,
        )
        self._service_terminated = True
        self._termination_received.set()

      case UnknownMessage() as unknown:
        self.logger.warning("Unknown message type", type=unknown.type)

  def _handle_begin(self, begin: BeginMessage) -> None:
    self.service_session_id = begin.id
    self.expires_at = begin.expires_at
    if self._begin and not self._begin.done():
      self.state = SessionState.ACTIVE
      self.began_at = _utcnow()
      self._begin.set_result(begin)
    else:
      self.logger.warning("Duplicate Begin message", service_session=begin.id)

  def _handle_turn(self, message: TurnMessage) -> None:
    if not message.transcript.strip():
      self.logger.debug("Ignoring empty turn", turn_order=message.turn_order)
      return

    if self.turns and message.turn_order < self.turns[-1].turn_order:
      self.logger.warning(
        "Turn received out of order",
        turn_order=message.turn_order,
        previous=self.turns[-1].turn_order,
      )

    turn = TranscriptTurn.from_message(message, _utcnow())
    self.turns.append(turn)
    self.last_activity = turn.received_at

    if turn.speaker and turn.speaker in self.participants:
      participant = self.participants[turn.speaker]
      participant.word_count += turn.word_count
      participant.turn_count += 1

    self.logger.debug(
      "Turn received",
      turn_order=turn.turn_order,
      end_of_turn=turn.end_of_turn,
      formatted=turn.turn_is_formatted,
      words=turn.word_count,
    )

    for listener in list(self._listeners):
      try:
        listener(turn)
      except Exception:
        self.logger.exception("Turn listener failed", turn_order=turn.turn_order)
