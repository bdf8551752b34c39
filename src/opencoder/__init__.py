"""Autonomous plan/execute/evaluate runner for the opencode CLI."""

__version__ = "1.0.0"
