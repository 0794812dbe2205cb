"""Discord presence API, GitHub commit poller, storage and bot reply messages."""

__version__ = "1.0.0"