"""Live listening sync for a social music-streaming client."""

__version__ = "0.1.0"
