"""Ambient Ear - Shared-microphone music and turn-completion detection."""

try:
    from ambient_ear._version import __version__
except ImportError:
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]
