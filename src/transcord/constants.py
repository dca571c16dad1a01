"""
Constants for the transcord pipeline.

These values describe fixed formats and are not configurable through the config file.
"""

BYTES_PER_SAMPLE = 2
"""pcm_s16le: every sample is a signed 16-bit little-endian integer."""

PCM_ENCODING = "pcm_s16le"
"""Encoding name the streaming service expects for raw PCM frames."""

INT16_FULL_SCALE = 32768.0
"""Largest 16-bit sample magnitude; RMS values are normalized by it."""

MIN_CHUNK_MS = 50
"""Shortest audio frame the streaming service accepts."""

MAX_CHUNK_MS = 1000
"""Longest audio frame the streaming service accepts."""

DEFAULT_STREAMING_URL = "wss://streaming.assemblyai.com/v3/ws"
"""Streaming speech-to-text endpoint."""

SUPPORTED_SAMPLE_RATES = (8000, 16000, 22050, 24000, 32000, 44100, 48000)
"""Sample rates accepted by the streaming endpoint."""
