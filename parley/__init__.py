"""Parley: a multi-thread agent chat overlay for the terminal."""

__version__ = "0.1.0"
