import logging
import re
from collections import Counter
from typing import List

from ai_localize.models import TranslationResults, TranslationTask

logger = logging.getLogger(__name__)

# printf / Foundation format specifiers: %@, %d, %lld, %1$@, %.2f, %-5s ...
FORMAT_SPECIFIER_PATTERN = re.compile(
    r'%(?:\d+\$)?[-+#0]*\d*(?:\.\d+)?(?:hh|h|ll|l|q|L|z|t|j)?[@dDiuUxXoOfFeEgGcCsSpaA]'
)


def extract_format_specifiers(text: str) -> List[str]:
    """
    Return the format specifiers found in ``text``, in order.

    Escaped percent signs (``%%``) are not specifiers and are skipped.
    """
    return FORMAT_SPECIFIER_PATTERN.findall(text.replace('%%', ''))


def check_placeholder_parity(source_text: str, translated_text: str) -> bool:
    """
    Checks if the format specifiers are identical between source and translation.
    Reordering is allowed, since positional specifiers (%1$@) may move.

    Args:
        source_text: The source-language string.
        translated_text: The translated string.

    Returns:
        True if both contain the same multiset of specifiers.
    """
    return Counter(extract_format_specifiers(source_text)) == Counter(extract_format_specifiers(translated_text))


def _edges(text: str):
    if not text.strip():
        return text, ''
    leading = text[:len(text) - len(text.lstrip())]
    trailing = text[len(text.rstrip()):]
    return leading, trailing


def check_whitespace_edges(source_text: str, translated_text: str) -> bool:
    """Checks that leading and trailing whitespace survived translation unchanged."""
    return _edges(source_text) == _edges(translated_text)


def validate_translations(tasks: List[TranslationTask], results: TranslationResults) -> List[str]:
    """
    Run the quality checks for every task that produced a result.

    Problems are reported, not fixed.

    Returns:
        A list of human readable problems. Empty means all checks passed.
    """
    problems = []
    for task in tasks:
        translated = results.get(task.key, {}).get(task.target_language)
        if translated is None:
            continue
        if not translated.strip() and task.source_text.strip():
            problems.append(f"Empty translation for key '{task.key}' ({task.target_language}).")
            continue
        if not check_placeholder_parity(task.source_text, translated):
            problems.append(
                f"Format specifier mismatch for key '{task.key}' ({task.target_language}): "
                f"expected {extract_format_specifiers(task.source_text)}, "
                f"got {extract_format_specifiers(translated)}."
            )
        if not check_whitespace_edges(task.source_text, translated):
            problems.append(f"Leading/trailing whitespace changed for key '{task.key}' ({task.target_language}).")

    for problem in problems:
        logger.warning(problem)
    return problems
