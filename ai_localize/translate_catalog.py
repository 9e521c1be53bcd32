"""
The translate and info workflows.

``translate_catalog`` runs the full pipeline against a loaded catalog:
reconcile, translate concurrently, validate and persist. ``summarize_catalog``
computes the per-language statistics shown by the ``info`` command.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from tqdm import tqdm

from ai_localize.catalog_store import CatalogStore, CatalogWriter
from ai_localize.errors import BatchTranslationError
from ai_localize.models import Catalog
from ai_localize.orchestrator import (
    DEFAULT_PACING_DELAY,
    TaskTranslateFn,
    group_by_language,
    run_all,
)
from ai_localize.reconciler import find_target_languages, reconcile
from ai_localize.translation_service import estimate_prompt_tokens
from ai_localize.translation_validator import validate_translations

logger = logging.getLogger(__name__)


@dataclass
class TranslationSummary:
    """Outcome of a translate run."""
    source_language: str
    target_languages: List[str]
    tasks_found: int = 0
    translations_written: int = 0
    estimated_prompt_tokens: Optional[int] = None
    problems: List[str] = field(default_factory=list)


@dataclass
class LanguageStatus:
    translated: int
    untranslated: int


@dataclass
class CatalogSummary:
    """Statistics reported by the info command."""
    source_language: str
    target_languages: List[str]
    total_strings: int
    languages: Dict[str, LanguageStatus]


def parse_language_list(value: Optional[str]) -> Optional[List[str]]:
    """
    Parse a comma-separated language list such as ``"es, fr,de"``.

    Returns:
        The language codes, or None when ``value`` is empty.
    """
    if not value:
        return None
    languages = [language.strip() for language in value.split(',')]
    languages = [language for language in languages if language]
    return languages or None


async def translate_catalog(
        store: CatalogStore,
        translate: Optional[TaskTranslateFn],
        target_languages: Optional[List[str]] = None,
        batch_size: int = 5,
        pacing_delay: float = DEFAULT_PACING_DELAY,
        persist_partial_results: bool = False,
        dry_run: bool = False,
        model_name: str = 'gpt-4o',
        show_progress: bool = True
) -> TranslationSummary:
    """
    Translate every string of the catalog that needs it and save the result.

    Args:
        store: The loaded catalog.
        translate: Task translator, usually ``OpenAITranslator.for_source``.
            May be None for dry runs.
        target_languages: Languages to translate into; defaults to the ones in the catalog.
        batch_size: Concurrent requests per language.
        pacing_delay: Seconds between batches of the same language.
        persist_partial_results: Save the translations that succeeded even when
            some language failed.
        dry_run: Only report what would be translated.
        model_name: Model used for token estimates.
        show_progress: Display a tqdm progress bar.

    Returns:
        A summary of the run.

    Raises:
        BatchTranslationError: If a language group failed. The catalog file is
            left untouched unless ``persist_partial_results`` is set.
        MergeError: If saving the catalog failed.
    """
    source_language = store.source_language
    logger.info("Source language: %s", source_language)

    available_languages = store.target_languages()
    logger.info("Available target languages: %s", ", ".join(available_languages) or "(none)")

    languages = target_languages if target_languages is not None else available_languages
    languages = [language for language in languages if language != source_language]
    logger.info("Selected target languages: %s", ", ".join(languages) or "(none)")

    summary = TranslationSummary(source_language=source_language, target_languages=languages)

    tasks = reconcile(store.catalog, languages)
    summary.tasks_found = len(tasks)
    logger.info("Found %d string(s) needing translation.", len(tasks))
    if not tasks:
        logger.info("No strings need translation.")
        return summary

    if dry_run:
        for language, language_tasks in sorted(group_by_language(tasks).items()):
            logger.info("[Dry Run] %s: %d string(s) would be translated.", language, len(language_tasks))
        summary.estimated_prompt_tokens = estimate_prompt_tokens(tasks, source_language, model_name)
        logger.info("[Dry Run] Estimated prompt tokens: %d. Catalog not modified.", summary.estimated_prompt_tokens)
        return summary

    if translate is None:
        raise ValueError("A translate function is required unless dry_run is set.")

    progress = tqdm(total=len(tasks), desc="Translating", unit="string", disable=not show_progress)
    try:
        results = await run_all(tasks, source_language, translate, batch_size, pacing_delay, progress)
    except BatchTranslationError as batch_exc:
        if persist_partial_results and batch_exc.partial_results:
            logger.warning("Saving %d key(s) translated before the failure.", len(batch_exc.partial_results))
            async with CatalogWriter(store) as writer:
                summary.translations_written = await writer.apply(batch_exc.partial_results)
        else:
            logger.error("No changes were written to '%s'.", store.path)
        raise
    finally:
        progress.close()

    summary.problems = validate_translations(tasks, results)

    async with CatalogWriter(store) as writer:
        summary.translations_written = await writer.apply(results)
    logger.info("Successfully updated %s with %d translation(s).", store.path, summary.translations_written)
    return summary


def summarize_catalog(catalog: Catalog) -> CatalogSummary:
    """
    Count translated and untranslated strings per target language.

    A string counts as untranslated for a language when ``reconcile`` would
    create a task for it.
    """
    target_languages = find_target_languages(catalog)
    total = sum(1 for entry in catalog.entries.values() if entry.should_translate)

    languages = {}
    for language in target_languages:
        untranslated = len(reconcile(catalog, [language]))
        languages[language] = LanguageStatus(translated=total - untranslated, untranslated=untranslated)

    return CatalogSummary(
        source_language=catalog.source_language,
        target_languages=target_languages,
        total_strings=total,
        languages=languages
    )
