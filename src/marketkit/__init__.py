"""marketkit: tag-aware response cache and chat session analytics."""

__version__ = "0.1.0"
