"""Exception types raised by the localization pipeline."""
from typing import Dict, Optional


class LocalizeError(Exception):
    """Base class for every error the tool reports to the user."""


class ConfigurationError(LocalizeError):
    """Missing API key, unreadable catalog path or an invalid setting."""


class CatalogFormatError(LocalizeError):
    """The catalog file is not valid JSON or does not match the xcstrings schema."""


class TranslationError(LocalizeError):
    """The translation provider failed or returned no usable content."""


class BatchTranslationError(TranslationError):
    """
    One or more language groups failed during a batch run.

    Attributes:
        partial_results: Translations completed before the failure, keyed by
            catalog key and then language.
        failures: The error that stopped each failed language group.
    """

    def __init__(
            self,
            message: str,
            partial_results: Optional[Dict[str, Dict[str, str]]] = None,
            failures: Optional[Dict[str, BaseException]] = None
    ):
        super().__init__(message)
        self.partial_results = partial_results or {}
        self.failures = failures or {}


class MergeError(LocalizeError):
    """Writing the updated catalog back to disk failed."""
