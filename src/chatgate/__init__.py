"""Text-command resolution and dispatch for a chat assistant gateway."""

__version__ = "0.1.0"
