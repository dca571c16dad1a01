"""
transcord: voice-meeting capture pipeline.

Per-participant voice audio is reframed to PCM, streamed to a real-time speech service, assembled
into a meeting transcript and handed to a summarizer.
"""

__version__ = "0.3.0"
