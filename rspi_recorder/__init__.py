"""Continuous microphone recorder writing back-to-back WAV segments."""

__version__ = "0.1.0"
