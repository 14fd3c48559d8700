"""Exam server, agent API and exam server client."""
