"""
Concurrent execution of translation tasks.

Tasks are grouped by target language. Groups run concurrently; inside a group
the tasks are split into chunks of ``batch_size`` that run one after another,
with a pause between chunks to stay under the provider's rate limits. All
tasks of a chunk run concurrently.

A failing task cancels the other tasks of its chunk and stops its language
group. Other groups keep going; once all groups are done the first failure is
raised as a ``BatchTranslationError`` that carries the results obtained so far.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from tqdm import tqdm

from ai_localize.errors import BatchTranslationError
from ai_localize.models import TranslationResult, TranslationResults, TranslationTask
from ai_localize.normalizer import normalize_response

logger = logging.getLogger(__name__)

TaskTranslateFn = Callable[[TranslationTask], Awaitable[str]]

# Seconds to wait between two chunks of the same language.
DEFAULT_PACING_DELAY = 1.0


@dataclass
class _GroupOutcome:
    language: str
    results: List[TranslationResult] = field(default_factory=list)
    error: Optional[BaseException] = None
    failed_at: float = 0.0


def group_by_language(tasks: List[TranslationTask]) -> Dict[str, List[TranslationTask]]:
    """Partition tasks by target language, keeping their relative order."""
    groups: Dict[str, List[TranslationTask]] = {}
    for task in tasks:
        groups.setdefault(task.target_language, []).append(task)
    return groups


def chunk_tasks(tasks: List[TranslationTask], batch_size: int) -> List[List[TranslationTask]]:
    """
    Split tasks into consecutive chunks of at most ``batch_size``.

    Raises:
        ValueError: If batch_size is smaller than 1.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    return [tasks[i:i + batch_size] for i in range(0, len(tasks), batch_size)]


async def _pace(delay: float) -> None:
    if delay > 0:
        await asyncio.sleep(delay)


async def _run_task(task: TranslationTask, translate: TaskTranslateFn) -> TranslationResult:
    raw = await translate(task)
    text = normalize_response(raw)
    logger.debug("Translated key '%s' into '%s'.", task.key, task.target_language)
    return TranslationResult(task.key, task.target_language, text)


async def _run_chunk(
        chunk: List[TranslationTask],
        translate: TaskTranslateFn,
        progress: Optional[tqdm]
) -> List[TranslationResult]:
    """
    Run every task of a chunk concurrently.

    The first failure cancels the tasks still running; they are awaited before
    the failure is re-raised so no worker outlives its chunk.
    """
    workers = [asyncio.create_task(_run_task(task, translate)) for task in chunk]
    pending = set(workers)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            # retrieve every exception in the done set, raise the first in chunk order
            errors = [worker.exception() for worker in workers if worker in done and worker.exception() is not None]
            if errors:
                raise errors[0]
            if progress is not None:
                for _ in done:
                    progress.update(1)
    finally:
        for worker in pending:
            worker.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    return [worker.result() for worker in workers]


async def _run_group(
        language: str,
        tasks: List[TranslationTask],
        translate: TaskTranslateFn,
        batch_size: int,
        pacing_delay: float,
        progress: Optional[tqdm]
) -> _GroupOutcome:
    outcome = _GroupOutcome(language)
    chunks = chunk_tasks(tasks, batch_size)
    logger.info("Translating %d string(s) into '%s' in %d batch(es).", len(tasks), language, len(chunks))

    for index, chunk in enumerate(chunks):
        if index > 0:
            await _pace(pacing_delay)
        logger.debug("Starting batch %d/%d for '%s' (%d task(s)).", index + 1, len(chunks), language, len(chunk))
        try:
            outcome.results.extend(await _run_chunk(chunk, translate, progress))
        except Exception as exc:
            logger.error(
                "Batch %d/%d for '%s' failed: %s. Skipping the remaining batches for this language.",
                index + 1, len(chunks), language, exc
            )
            outcome.error = exc
            outcome.failed_at = asyncio.get_running_loop().time()
            break
    else:
        logger.info("Completed %d translation(s) for '%s'.", len(outcome.results), language)

    return outcome


def _aggregate(outcomes: List[_GroupOutcome]) -> TranslationResults:
    aggregated: TranslationResults = {}
    for outcome in outcomes:
        for result in outcome.results:
            aggregated.setdefault(result.key, {})[result.target_language] = result.text
    return aggregated


async def run_all(
        tasks: List[TranslationTask],
        source_language: str,
        translate: TaskTranslateFn,
        batch_size: int,
        pacing_delay: float = DEFAULT_PACING_DELAY,
        progress: Optional[tqdm] = None
) -> TranslationResults:
    """
    Translate all tasks and collect the normalized results.

    Args:
        tasks: The tasks to run, usually from ``reconcile``.
        source_language: Language of the source texts; used for logging.
        translate: Coroutine function returning the raw model output for a task.
        batch_size: Maximum number of concurrent tasks per language.
        pacing_delay: Seconds to wait between chunks of the same language.
        progress: Optional progress bar advanced once per finished task.

    Returns:
        A mapping of key -> language -> translated text.

    Raises:
        ValueError: If batch_size is smaller than 1.
        BatchTranslationError: If any language group failed. Results that were
            completed are available as ``partial_results``.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    groups = group_by_language(tasks)
    logger.info(
        "Dispatching %d task(s) from '%s' across %d language(s).",
        len(tasks), source_language, len(groups)
    )

    outcomes = await asyncio.gather(*[
        _run_group(language, language_tasks, translate, batch_size, pacing_delay, progress)
        for language, language_tasks in groups.items()
    ])

    results = _aggregate(outcomes)
    failed = [outcome for outcome in outcomes if outcome.error is not None]
    if failed:
        first_error = min(failed, key=lambda outcome: outcome.failed_at).error
        failures = {outcome.language: outcome.error for outcome in failed}
        raise BatchTranslationError(
            f"Translation failed for {len(failures)} language(s) "
            f"({', '.join(sorted(failures))}): {first_error}",
            partial_results=results,
            failures=failures
        ) from first_error

    return results
