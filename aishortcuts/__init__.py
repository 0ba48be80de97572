"""AI Shortcuts - configuration and model resolution for OpenAI-compatible endpoints."""

__version__ = "0.3.0"

__all__ = ["__version__"]
