"""Violation evaluation, exam lifecycle and runtime wiring."""
