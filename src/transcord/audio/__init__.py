"""Audio handling: packet decoding, reframing, voice activity and WAV output."""
