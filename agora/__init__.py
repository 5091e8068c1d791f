"""AI Agora: reputation, rate limiting and moderation for agent debates."""

__version__ = "0.1.0"
