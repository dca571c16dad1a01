"""Shared fakes: an in-memory speech service and a scripted voice source."""

import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosedError

from transcord.config import TranscordConfig

_CLOSE = object()
TERMINATE = '{"type":"Terminate"}'


class FakeConnection:
  """Stands in for a websockets client connection to the speech service."""

  def __init__(self, url: str, headers: dict[str, str], auto_terminate: bool = True) -> None:
    self.url = url
    self.headers = headers
    self.auto_terminate = auto_terminate
    self.sent: list[str | bytes] = []
    self.closed = False
    self._incoming: asyncio.Queue = asyncio.Queue()

  @property
  def audio_frames(self) -> list[bytes]:
    return [message for message in self.sent if isinstance(message, bytes)]

  @property
  def control_messages(self) -> list[str]:
    return [message for message in self.sent if isinstance(message, str)]

  async def send(self, message: str | bytes) -> None:
    self.sent.append(message)
    if message == TERMINATE and self.auto_terminate:
      self.push({"type": "Termination", "audio_duration_seconds": 1.0})
      self._incoming.put_nowait(_CLOSE)

  async def close(self, code: int = 1000, reason: str = "") -> None:
    if not self.closed:
      self.closed = True
      self._incoming.put_nowait(_CLOSE)

  def __aiter__(self):
    return self._messages()

  async def _messages(self):
    while True:
      item = await self._incoming.get()
      if item is _CLOSE:
        return
      if isinstance(item, Exception):
        raise item
      yield item

  def push(self, message: dict) -> None:
    self._incoming.put_nowait(json.dumps(message))

  def push_raw(self, raw: str | bytes) -> None:
    self._incoming.put_nowait(raw)

  def push_begin(self, session_id: str = "svc-1", expires_at: int = 1760000000) -> None:
    self.push({"type": "Begin", "id": session_id, "expires_at": expires_at})

  def push_turn(
    self,
    transcript: str,
    turn_order: int = 0,
    confidence: float | None = None,
    words: list[str] | None = None,
    speaker: str | None = None,
  ) -> None:
    message = {
      "type": "Turn",
      "transcript": transcript,
      "turn_order": turn_order,
      "turn_is_formatted": True,
      "end_of_turn": True,
      "end_of_turn_confidence": confidence,
    }
    if words is not None:
      message["words"] = [{"text": word, "confidence": 0.9} for word in words]
    if speaker is not None:
      message["speaker_label"] = speaker
    self.push(message)

  def fail(self) -> None:
    """Drop the transport as if the network went away."""
    self._incoming.put_nowait(ConnectionClosedError(None, None))


class FakeSpeechService:
  """Connect factory that hands out FakeConnections."""

  def __init__(self, auto_begin: bool = True, connect_error: Exception | None = None) -> None:
    self.auto_begin = auto_begin
    self.connect_error = connect_error
    self.connections: list[FakeConnection] = []

  @property
  def connection(self) -> FakeConnection:
    return self.connections[-1]

  async def __call__(self, url: str, headers: dict[str, str]) -> FakeConnection:
    if self.connect_error is not None:
      raise self.connect_error
    connection = FakeConnection(url, headers)
    self.connections.append(connection)
    if self.auto_begin:
      connection.push_begin()
    return connection


class FakeVoiceSource:
  """Voice source whose packets are pushed by the test."""

  def __init__(self, names: dict[str, str] | None = None, broken: set[str] | None = None) -> None:
    self.names = names or {}
    self.broken = broken or set()
    self.queues: dict[str, asyncio.Queue] = {}
    self.unsubscribed: list[str] = []

  def subscribe(self, participant_id: str):
    if participant_id in self.broken:
      raise RuntimeError(f"cannot subscribe {participant_id}")
    queue: asyncio.Queue = asyncio.Queue()
    self.queues[participant_id] = queue
    return self._packets(queue)

  def unsubscribe(self, participant_id: str) -> None:
    self.unsubscribed.append(participant_id)
    queue = self.queues.get(participant_id)
    if queue is not None:
      queue.put_nowait(None)

  def display_name(self, participant_id: str) -> str | None:
    return self.names.get(participant_id)

  def push(self, participant_id: str, packet: bytes) -> None:
    self.queues[participant_id].put_nowait(packet)

  def end(self, participant_id: str) -> None:
    self.queues[participant_id].put_nowait(None)

  async def _packets(self, queue: asyncio.Queue):
    while (packet := await queue.get()) is not None:
      yield packet


async def wait_until(predicate, timeout: float = 1.0) -> None:
  """Yield to the event loop until ``predicate()`` holds."""
  async with asyncio.timeout(timeout):
    while not predicate():
      await asyncio.sleep(0.005)


def make_config(**overrides) -> TranscordConfig:
  data = {
    "streaming": {"api_key": "test-key", "handshake_timeout": 1.0, "stop_grace_period": 0.2},
    "audio": {"no_audio_warning": 0.05},
    "vad": {"idle_timeout": 0.05},
  }
  for section, values in overrides.items():
    data.setdefault(section, {}).update(values)
  return TranscordConfig.model_validate(data)


@pytest.fixture
def config() -> TranscordConfig:
  return make_config()


@pytest.fixture
def service() -> FakeSpeechService:
  return FakeSpeechService()


@pytest.fixture
def voice() -> FakeVoiceSource:
  return FakeVoiceSource(names={"alice": "Alice", "bob": "Bob"})
