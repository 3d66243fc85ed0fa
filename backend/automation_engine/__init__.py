"""Automation rule evaluation and execution engine for the IoT platform."""

__version__ = "0.1.0"
