"""
Audio reframing: voice packets in, fixed-duration mono PCM frames out.

A reframer serves exactly one participant. Each packet is decoded to interleaved pcm_s16le at the
voice source's native rate and channel count, reduced to the target channel layout, and sliced
into frames of the configured duration.

Downmixing keeps a single configured channel (channel 0 by default). Channels are never averaged.
"""

from typing import Protocol

import numpy as np
from discord.opus import Decoder as OpusDecoder
from discord.opus import OpusError

from transcord.audio.buffer import FrameBuffer
from transcord.config import AudioConfig
from transcord.constants import BYTES_PER_SAMPLE
from transcord.errors import TranscordError
from transcord.logs import get_logger


class PacketDecodeError(TranscordError):
  """A packet could not be turned into PCM."""


class PacketDecoder(Protocol):
  """Turns one opaque voice packet into interleaved 16-bit little-endian PCM."""

  def decode(self, packet: bytes) -> bytes: ...


class PcmPassthroughDecoder:
  """Decoder for sources that already deliver raw PCM (file replay, py-cord sinks)."""

  def __init__(self, channels: int) -> None:
    self.block_align = channels * BYTES_PER_SAMPLE

  def decode(self, packet: bytes) -> bytes:
    if len(packet) % self.block_align:
      raise PacketDecodeError(
        f"PCM packet of {len(packet)} bytes is not a whole number of "
        f"{self.block_align}-byte samples"
      )
    return packet


class OpusPacketDecoder:
  """Decoder for raw Opus packets, backed by the libopus binding that ships with py-cord."""

  sample_rate = OpusDecoder.SAMPLING_RATE
  channels = OpusDecoder.CHANNELS

  def __init__(self, decoder: OpusDecoder | None = None) -> None:
    self._decoder = decoder or OpusDecoder()

  def decode(self, packet: bytes) -> bytes:
    try:
      return self._decoder.decode(packet)
    except OpusError as e:
      raise PacketDecodeError(f"Opus decode failed: {e}") from e


def select_channel(pcm: bytes, channels: int, channel: int) -> bytes:
  """
  Reduce interleaved PCM to a single channel by keeping one channel's samples.

  :param
      pcm: Interleaved pcm_s16le, a whole number of sample blocks.
      channels: Number of interleaved channels in ``pcm``.
      channel: Index of the channel to keep.
  """
  if channels == 1:
    return pcm
  samples = np.frombuffer(pcm, dtype="<i2").reshape(-1, channels)
  return np.ascontiguousarray(samples[:, channel]).tobytes()


class AudioReframer:
  """
  Per-participant pipeline from packets to wire-ready frames.

  Call :meth:`process` for every packet in arrival order and :meth:`flush` exactly once when the
  participant's stream ends. Frames come out in the same order their audio went in.
  """

  def __init__(
    self,
    participant_id: str,
    config: AudioConfig,
    decoder: PacketDecoder | None = None,
  ) -> None:
    """
    :param
        participant_id: Voice-source user id, used for log context only.
        config: Source and target audio layout.
        decoder: Packet decoder. Defaults to PCM passthrough at the source channel count.
    """
    self.participant_id = participant_id
    self.config = config
    self.decoder = decoder or PcmPassthroughDecoder(config.source_channels)
    self.buffer = FrameBuffer(config.frame_bytes)
    self.packets_decoded = 0
    self.logger = get_logger("snd/reframe").bind(participant=participant_id)

  @property
  def frame_bytes(self) -> int:
    return self.buffer.frame_bytes

  def process(self, packet: bytes) -> list[bytes]:
    """
    Decode one packet and return any frames that are now complete.

    :raises PacketDecodeError: when the packet cannot be decoded. The caller owns the policy for
      what a decode failure means for the participant.
    """
    pcm = self.decoder.decode(packet)
    self.packets_decoded += 1

    if self.config.target_channels < self.config.source_channels:
      pcm = select_channel(pcm, self.config.source_channels, self.config.downmix_channel)

    frames = self.buffer.append(pcm)
    if frames:
      self.logger.debug("Frames ready", count=len(frames), pending=len(self.buffer))
    return frames

  def flush(self) -> bytes | None:
    """Return the partial final frame, if any audio is still pending."""
    remainder = self.buffer.flush()
    self.logger.debug(
      "Reframer flushed",
      remainder=len(remainder) if remainder else 0,
      packets=self.packets_decoded,
      frames=self.buffer.frames_emitted,
    )
    return remainder
