"""Chat proxy exposing an OpenAI-style completion route over the local model registry.

Requests are validated against the installed models, shaped for the model's
engine, and streamed through to the local inference runtime unmodified.
"""

__all__ = []
