"""Translate Xcode String Catalogs with an OpenAI chat model."""

__version__ = "0.1.0"
