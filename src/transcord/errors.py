"""
Typed failures raised by the recording pipeline.

Per-participant audio problems never surface here; they are contained and logged where they
happen. Everything below is something a caller is expected to handle explicitly.
"""


class TranscordError(Exception):
  """Base class for all transcord failures."""


class ConfigurationError(TranscordError):
  """Configuration is missing or invalid; no session may be started."""


class SessionConnectionError(TranscordError):
  """The transcription socket could not be established."""


class ConnectionTimeout(SessionConnectionError):
  """The speech service did not acknowledge the session within the handshake timeout."""

  def __init__(self, session_id: str, timeout: float) -> None:
    super().__init__(f"Session {session_id} not acknowledged within {timeout:.1f}s")
    self.session_id = session_id
    self.timeout = timeout


class AlreadyRecording(TranscordError):
  """A recording is already in flight somewhere in this process."""

  def __init__(self, active_session_id: str) -> None:
    super().__init__(f"Already recording in session {active_session_id}")
    self.active_session_id = active_session_id


class SessionNotFound(TranscordError):
  """No session is registered under the given identifier."""

  def __init__(self, session_id: str) -> None:
    super().__init__(f"No session registered as {session_id}")
    self.session_id = session_id


class SessionNotActive(TranscordError):
  """The session exists but is no longer accepting changes."""

  def __init__(self, session_id: str, state: str) -> None:
    super().__init__(f"Session {session_id} is {state}, not active")
    self.session_id = session_id
    self.state = state


class AlreadyClosed(TranscordError):
  """The session is closed and never produced a transcript."""

  def __init__(self, session_id: str) -> None:
    super().__init__(f"Session {session_id} is closed and has no transcript")
    self.session_id = session_id


class SummaryError(TranscordError):
  """The summarizer could not produce a summary."""
