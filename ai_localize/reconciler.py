"""Decide which catalog entries need (re)translation."""
import logging
from typing import Iterable, List, Optional

from ai_localize.models import Catalog, Localization, TranslationState, TranslationTask

logger = logging.getLogger(__name__)


def find_target_languages(catalog: Catalog) -> List[str]:
    """
    Collect every language used by any entry, except the source language.

    Args:
        catalog: The loaded catalog.

    Returns:
        The language codes sorted ascending.
    """
    languages = set()
    for entry in catalog.entries.values():
        if not entry.localizations:
            continue
        languages.update(entry.localizations.keys())
    languages.discard(catalog.source_language)
    return sorted(languages)


def needs_translation(localization: Optional[Localization]) -> bool:
    """
    Return True when a localization is missing, has no state or is not yet final.

    Args:
        localization: The target-language localization, or None if absent.
    """
    if localization is None:
        return True

    state = localization.state
    if state is None:
        # Unreviewed, or a plural-only localization without a string unit.
        return True
    if state in (TranslationState.NEW, TranslationState.NEEDS_REVIEW, TranslationState.STALE):
        return True
    if state is TranslationState.TRANSLATED:
        return False
    raise AssertionError(f"Unhandled translation state: {state!r}")


def _candidate_languages(catalog: Catalog, target_languages: Iterable[str]) -> List[str]:
    """Drop duplicates and the source language, keeping the caller's order."""
    candidates = []
    for language in target_languages:
        if language == catalog.source_language or language in candidates:
            continue
        candidates.append(language)
    return candidates


def reconcile(catalog: Catalog, target_languages: Optional[Iterable[str]] = None) -> List[TranslationTask]:
    """
    Build the list of translation tasks still required for a catalog.

    A task is created for:
    1. Every target language of a bare entry (no localizations), using the
       key itself as source text.
    2. Every target language needing translation of an entry that has
       localizations but no source-language text, again using the key.
    3. Every target language needing translation of an entry with a
       source-language localization, using that localization's value.

    Entries marked ``shouldTranslate: false`` are skipped.

    Args:
        catalog: The catalog to inspect.
        target_languages: Languages to translate into. Defaults to every
            language already present in the catalog.

    Returns:
        The tasks, in sorted key order. No two tasks share a key and language.
    """
    if target_languages is None:
        target_languages = find_target_languages(catalog)
    languages = _candidate_languages(catalog, target_languages)

    tasks: List[TranslationTask] = []
    for key in sorted(catalog.entries):
        entry = catalog.entries[key]
        if not entry.should_translate:
            logger.debug("Skipping key '%s': marked as not translatable.", key)
            continue

        if entry.is_bare:
            for language in languages:
                tasks.append(TranslationTask(key, key, language, entry.comment))
            continue

        source_localization = entry.localizations.get(catalog.source_language)
        if source_localization is not None and source_localization.string_unit is not None:
            source_text = source_localization.string_unit.value
        else:
            source_text = key

        for language in languages:
            if needs_translation(entry.localizations.get(language)):
                tasks.append(TranslationTask(key, source_text, language, entry.comment))

    return tasks
