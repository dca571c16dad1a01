"""Streaming connection to the real-time speech service."""
