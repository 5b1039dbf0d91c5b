"""Orbit Bridge - Telegram webhook to Orbit project/task bridge."""

__version__ = "0.1.0"
