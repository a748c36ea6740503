"""Taskflow client core: task progress, acceptance and access rules."""

__version__ = "0.1.0"
