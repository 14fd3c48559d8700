"""Exam Proctor — timed online exam proctoring agent and exam server."""

__version__ = "1.0.0"
