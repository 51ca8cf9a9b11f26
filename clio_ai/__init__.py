# clio_ai
"""clio-ai: a local-first CLI agent that turns prompts into sandboxed file operations."""

__version__ = "0.1.0"

__all__ = ["__version__"]
