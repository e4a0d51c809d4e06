"""Cowork host - agent orchestration and UI bridge for the desktop assistant."""

__version__ = "0.1.0"
