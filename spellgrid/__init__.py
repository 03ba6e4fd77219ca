"""Real-time multiplayer word-search game engine."""

__version__ = "0.1.0"
