"""Real-time message relay with full history replay."""

__version__ = "0.1.0"
