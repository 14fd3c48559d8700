"""Microphone capture and voice activity monitoring."""
