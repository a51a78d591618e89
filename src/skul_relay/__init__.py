"""Skul Relay: moderated tutor/student messaging service."""

__version__ = "0.1.0"
