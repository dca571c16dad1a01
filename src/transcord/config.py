import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr, model_validator, validate_call
from pydantic.dataclasses import dataclass
from pydantic.types import FilePath

from transcord.constants import (
  BYTES_PER_SAMPLE,
  DEFAULT_STREAMING_URL,
  MAX_CHUNK_MS,
  MIN_CHUNK_MS,
  PCM_ENCODING,
  SUPPORTED_SAMPLE_RATES,
)
from transcord.errors import ConfigurationError
from transcord.logs import get_logger

logger = get_logger("cfg")


def get_env_bool(key: str, default: bool) -> bool:
  """Get a bool from an environment variable."""
  return os.getenv(key, str(default)).lower() in ("true", "1", "yes", "on")


def _secret_from_env(values: dict, field: str, env_var: str) -> dict:
  if not values.get(field):
    env_value = os.getenv(env_var)
    if env_value:
      values[field] = env_value
  return values


@dataclass
class AudioConfig:
  """Shape of the PCM that leaves the reframer."""

  sample_rate: int = Field(default=48000, gt=0)
  """Sample rate of the voice source, in Hz. Audio is never resampled."""

  source_channels: int = Field(default=2, ge=1, le=2)
  """Channel count of decoded voice packets."""

  target_channels: int = Field(default=1, ge=1, le=2)
  """Channel count sent to the speech service."""

  downmix_channel: int = Field(default=0, ge=0)
  """Which source channel survives when downmixing to mono."""

  chunk_ms: int = Field(default=200, gt=0)
  """Target frame duration. Values outside 50-1000ms are clamped, not rejected."""

  no_audio_warning: float = Field(default=10.0, gt=0.0)
  """Seconds after subscription before a silent participant is reported."""

  @model_validator(mode="after")
  def validate_channel_layout(self) -> "AudioConfig":
    """Validate that the target layout can be produced from the source layout."""
    if self.target_channels > self.source_channels:
      raise ValueError(
        f"target_channels ({self.target_channels}) cannot exceed "
        f"source_channels ({self.source_channels})"
      )
    if self.downmix_channel >= self.source_channels:
      raise ValueError(
        f"downmix_channel ({self.downmix_channel}) must be less than "
        f"source_channels ({self.source_channels})"
      )
    return self

  @property
  def frame_ms(self) -> int:
    """Frame duration after clamping to what the speech service accepts."""
    return max(MIN_CHUNK_MS, min(self.chunk_ms, MAX_CHUNK_MS))

  @property
  def frame_bytes(self) -> int:
    """Size of one outbound frame, always a whole number of samples."""
    samples = self.sample_rate * self.frame_ms // 1000
    return samples * BYTES_PER_SAMPLE * self.target_channels


class StreamingConfig(BaseModel):
  """Connection settings for the real-time speech service."""

  url: str = DEFAULT_STREAMING_URL
  """Streaming endpoint."""

  api_key: SecretStr | None = None
  """Service API key. Falls back to ASSEMBLYAI_API_KEY."""

  encoding: str = PCM_ENCODING
  """Encoding announced in the connection query."""

  format_turns: bool = True
  """Ask the service for punctuated, formatted turns."""

  end_of_turn_confidence_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
  """Optional end-of-turn sensitivity passed through to the service."""

  handshake_timeout: float = Field(default=10.0, gt=0.0)
  """Seconds to wait for the Begin acknowledgement."""

  stop_grace_period: float = Field(default=1.0, ge=0.0)
  """Seconds to wait for trailing messages after requesting termination."""

  @model_validator(mode="before")
  @classmethod
  def resolve_api_key(cls, values: dict) -> dict:
    """Pull the API key from the environment when the file does not carry one."""
    if not isinstance(values, dict):
      return values
    return _secret_from_env(dict(values), "api_key", "ASSEMBLYAI_API_KEY")


class VoiceActivityConfig(BaseModel):
  """Energy heuristic used for speaking/silent telemetry."""

  threshold: float = Field(default=0.02, gt=0.0, lt=1.0)
  """Normalized RMS above which a frame counts as speech."""

  idle_timeout: float = Field(default=5.0, gt=0.0)
  """Seconds without a loud frame before a participant is considered silent."""


class RecordingConfig(BaseModel):
  """Optional raw-audio side output."""

  save_to_disk: bool = False
  """Write every outbound frame to <recordings_dir>/<session>.wav."""

  recordings_dir: Path = Path("./recordings")
  """Directory for raw and finalized recordings."""

  @model_validator(mode="before")
  @classmethod
  def resolve_env(cls, values: dict) -> dict:
    """Honor SAVE_RECORDINGS and RECORDINGS_DIR when the file leaves them unset."""
    if not isinstance(values, dict):
      return values
    values = dict(values)
    if "save_to_disk" not in values and os.getenv("SAVE_RECORDINGS") is not None:
      values["save_to_disk"] = get_env_bool("SAVE_RECORDINGS", False)
    if "recordings_dir" not in values and os.getenv("RECORDINGS_DIR"):
      values["recordings_dir"] = os.environ["RECORDINGS_DIR"]
    return values


class SummaryConfig(BaseModel):
  """Settings for the LLM summarizer."""

  api_key: SecretStr | None = None
  """Gemini API key. Falls back to GEMINI_API_KEY."""

  model: str = "gemini-2.0-flash-lite"
  """Default model."""

  large_model: str = "gemini-2.0-flash-lite"
  """Model used when the transcript is longer than large_input_threshold."""

  large_input_threshold: int = Field(default=50000, gt=0)
  """Transcript length, in characters, that switches to large_model."""

  temperature: float = Field(default=0.3, ge=0.0, le=2.0)
  max_output_tokens: int = Field(default=8192, gt=0)

  @model_validator(mode="before")
  @classmethod
  def resolve_api_key(cls, values: dict) -> dict:
    """Pull the API key from the environment when the file does not carry one."""
    if not isinstance(values, dict):
      return values
    return _secret_from_env(dict(values), "api_key", "GEMINI_API_KEY")


class TranscordConfig(BaseModel):
  """Top-level transcord configuration."""

  audio: AudioConfig = Field(default_factory=AudioConfig)
  streaming: StreamingConfig = Field(default_factory=StreamingConfig)
  vad: VoiceActivityConfig = Field(default_factory=VoiceActivityConfig)
  recording: RecordingConfig = Field(default_factory=RecordingConfig)
  summary: SummaryConfig = Field(default_factory=SummaryConfig)

  def validate_for_recording(self) -> None:
    """
    Refuse to record with a configuration that could only produce a degraded session.

    :raises ConfigurationError: when the streaming API key is missing or the sample rate is not
      one the streaming service accepts.
    """
    errors = []
    if self.streaming.api_key is None or not self.streaming.api_key.get_secret_value():
      errors.append("Streaming API key not configured (set ASSEMBLYAI_API_KEY)")
    if self.audio.sample_rate not in SUPPORTED_SAMPLE_RATES:
      errors.append(
        f"Unsupported sample rate {self.audio.sample_rate}Hz "
        f"(supported: {', '.join(str(rate) for rate in SUPPORTED_SAMPLE_RATES)})"
      )
    if errors:
      for error in errors:
        logger.error("Configuration invalid", reason=error)
      raise ConfigurationError("; ".join(errors))

    if self.audio.chunk_ms != self.audio.frame_ms:
      logger.warning(
        "Chunk duration clamped", requested_ms=self.audio.chunk_ms, used_ms=self.audio.frame_ms
      )

  def pretty_print(self) -> None:
    """Log every effective setting at INFO level, secrets redacted."""

    def redacted(secret: SecretStr | None) -> str:
      return "<set>" if secret is not None and secret.get_secret_value() else "<missing>"

    logger.info("=" * 60)
    logger.info("TRANSCORD CONFIGURATION")
    logger.info("=" * 60)

    logger.info("AUDIO SETTINGS:")
    logger.info(f"  Sample Rate: {self.audio.sample_rate}Hz")
    logger.info(f"  Source Channels: {self.audio.source_channels}")
    logger.info(f"  Target Channels: {self.audio.target_channels}")
    logger.info(f"  Downmix Channel: {self.audio.downmix_channel}")
    logger.info(f"  Frame Duration: {self.audio.frame_ms}ms ({self.audio.frame_bytes} bytes)")
    logger.info(f"  No Audio Warning: {self.audio.no_audio_warning}s")

    logger.info("STREAMING SETTINGS:")
    logger.info(f"  URL: {self.streaming.url}")
    logger.info(f"  API Key: {redacted(self.streaming.api_key)}")
    logger.info(f"  Encoding: {self.streaming.encoding}")
    logger.info(f"  Format Turns: {self.streaming.format_turns}")
    logger.info(f"  End Of Turn Threshold: {self.streaming.end_of_turn_confidence_threshold}")
    logger.info(f"  Handshake Timeout: {self.streaming.handshake_timeout}s")
    logger.info(f"  Stop Grace Period: {self.streaming.stop_grace_period}s")

    logger.info("VOICE ACTIVITY SETTINGS:")
    logger.info(f"  Threshold: {self.vad.threshold}")
    logger.info(f"  Idle Timeout: {self.vad.idle_timeout}s")

    logger.info("RECORDING SETTINGS:")
    logger.info(f"  Save To Disk: {self.recording.save_to_disk}")
    logger.info(f"  Recordings Dir: {self.recording.recordings_dir}")

    logger.info("SUMMARY SETTINGS:")
    logger.info(f"  API Key: {redacted(self.summary.api_key)}")
    logger.info(f"  Model: {self.summary.model}")
    logger.info(f"  Large Model: {self.summary.large_model}")
    logger.info(f"  Large Input Threshold: {self.summary.large_input_threshold} chars")
    logger.info(f"  Temperature: {self.summary.temperature}")
    logger.info(f"  Max Output Tokens: {self.summary.max_output_tokens}")

    logger.info("=" * 60)


@validate_call
def load_config_from_file(config_path: FilePath) -> TranscordConfig:
  """Load and validate transcord configuration from a YAML file."""

  logger.info("Loading transcord configuration", path=str(config_path))

  try:
    with open(config_path, "r", encoding="utf-8") as file:
      config_data = yaml.safe_load(file)

  except yaml.YAMLError as e:
    raise ValueError(f"Invalid YAML in configuration file: {e}") from e
  except OSError as e:
    raise ValueError(f"Error reading configuration file: {e}") from e

  if config_data is None:
    raise ValueError("Configuration file is empty")

  if not isinstance(config_data, dict):
    raise ValueError("Configuration file must contain a YAML dictionary")

  config = TranscordConfig.model_validate(config_data)
  config.pretty_print()

  return config
