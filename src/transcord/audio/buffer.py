"""
Append buffer that slices a byte stream into fixed-size frames.

Bytes are appended as they are decoded; whole frames are released as soon as enough bytes have
accumulated, and the partial remainder is released only by an explicit end-of-stream flush.
"""

from transcord.constants import BYTES_PER_SAMPLE


class FrameBuffer:
  """
  Accumulates PCM bytes and yields fixed-size frames.

  Not thread-safe. Each participant owns its own buffer and only that participant's pump task
  touches it.
  """

  def __init__(self, frame_bytes: int) -> None:
    """
    :param
        frame_bytes: Size of every emitted frame except the final flushed remainder. Must be a
                     positive multiple of the sample width.
    """
    if frame_bytes <= 0 or frame_bytes % BYTES_PER_SAMPLE:
      raise ValueError(f"frame_bytes must be a positive multiple of {BYTES_PER_SAMPLE}")

    self.frame_bytes = frame_bytes
    self._pending = bytearray()
    self.frames_emitted = 0
    self.bytes_received = 0

  def __len__(self) -> int:
    return len(self._pending)

  def append(self, data: bytes) -> list[bytes]:
    """
    Append decoded bytes and return every complete frame now available.

    :param
        data: Decoded PCM bytes.

    :returns:
        Complete frames, oldest first. Leftover bytes stay pending.
    """
    self._pending.extend(data)
    self.bytes_received += len(data)

    frames = []
    while len(self._pending) >= self.frame_bytes:
      frames.append(bytes(self._pending[: self.frame_bytes]))
      del self._pending[: self.frame_bytes]

    self.frames_emitted += len(frames)
    return frames

  def flush(self) -> bytes | None:
    """
    Release the partial remainder at end of stream.

    The remainder is trimmed to a whole number of samples; a dangling odd byte cannot be
    interpreted as 16-bit audio and is discarded.

    :returns:
        The remaining bytes, or None if nothing usable was pending.
    """
    usable = len(self._pending) - len(self._pending) % BYTES_PER_SAMPLE
    remainder = bytes(self._pending[:usable])
    self._pending.clear()

    if not remainder:
      return None

    self.frames_emitted += 1
    return remainder
