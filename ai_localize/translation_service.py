"""
OpenAI-backed translator.

``OpenAITranslator.translate`` returns the model output untouched; turning it
into a clean string is ``normalize_response``'s job. The prompt asks the model
to wrap its answer in the same boundary markers that frame the source text,
which is what the normalizer looks for first.
"""
import asyncio
import logging
import random
from typing import Iterable, Optional

import tiktoken
from aiolimiter import AsyncLimiter
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    NotFoundError,
    OpenAIError,
    PermissionDeniedError,
    RateLimitError,
)
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from ai_localize.errors import TranslationError
from ai_localize.models import TranslationTask
from ai_localize.normalizer import CLOSE_SENTINEL, OPEN_SENTINEL
from ai_localize.orchestrator import TaskTranslateFn

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a professional translator with expertise in software localization."

# Errors that will not go away by sending the same request again.
NON_RETRYABLE_ERRORS = (AuthenticationError, PermissionDeniedError, BadRequestError, NotFoundError)


def build_translation_prompt(
        text: str,
        source_language: str,
        target_language: str,
        context: Optional[str] = None
) -> str:
    """
    Build the user prompt for a single string.

    Args:
        text: The source text.
        source_language: Language code of the source text (e.g. "en").
        target_language: Language code to translate into (e.g. "es").
        context: Developer comment from the catalog, if any.

    Returns:
        The prompt text.
    """
    prompt = f"""Translate the following text from {source_language} to {target_language}.

IMPORTANT RULES:
1. Preserve ALL whitespace exactly as in the original text, including:
   - Leading spaces
   - Trailing spaces
   - Multiple consecutive spaces
   - Newlines
2. Keep ALL format specifiers exactly as they appear (e.g. %@, %lld, %1$@, etc.)
3. Do not add or remove any whitespace
4. Provide ONLY the translated text, no quotes or explanations
5. Wrap your answer in {OPEN_SENTINEL} and {CLOSE_SENTINEL}, exactly like the text below

Text to translate ({OPEN_SENTINEL} and {CLOSE_SENTINEL} show text boundaries):
{OPEN_SENTINEL}{text}{CLOSE_SENTINEL}"""

    if context:
        prompt += f"\n\nContext or notes for translation: {context}"

    return prompt


def count_tokens(text: str, model_name: str = 'gpt-4o') -> int:
    """Count the number of tokens in ``text`` for ``model_name``.

    ``tiktoken.encoding_for_model`` may try to download model data. If that
    fails the ``gpt2`` encoding shipped with ``tiktoken`` is used, and as a
    last resort a whitespace split.
    """
    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception as model_exc:
        logger.debug("No tiktoken encoding for model '%s' (%s); using gpt2.", model_name, model_exc)
        try:
            encoding = tiktoken.get_encoding("gpt2")
        except Exception as gpt2_exc:
            logger.debug("gpt2 encoding unavailable (%s); counting whitespace-separated words.", gpt2_exc)
            return len(text.split())

    try:
        return len(encoding.encode(text))
    except Exception as encode_exc:
        logger.debug("Token encoding failed (%s); counting whitespace-separated words.", encode_exc)
        return len(text.split())


def estimate_prompt_tokens(tasks: Iterable[TranslationTask], source_language: str, model_name: str) -> int:
    """Estimate the prompt tokens a run over ``tasks`` would send."""
    system_tokens = count_tokens(SYSTEM_PROMPT, model_name)
    total = 0
    for task in tasks:
        prompt = build_translation_prompt(task.source_text, source_language, task.target_language, task.comment)
        total += system_tokens + count_tokens(prompt, model_name)
    return total


def _retry_after_seconds(api_exc: Optional[Exception]) -> Optional[float]:
    response = getattr(api_exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    retry_after_ms = headers.get("retry-after-ms")
    if retry_after_ms:
        return float(retry_after_ms) / 1000
    retry_after_header = headers.get("retry-after")
    if not retry_after_header:
        return None
    if retry_after_header.isdigit():
        return float(retry_after_header)
    if retry_after_header.endswith("ms"):
        return float(retry_after_header[:-2]) / 1000
    return None


async def _handle_retry(attempt: int, max_retries: int, base_delay: float, key: str,
                        api_exc: Optional[Exception] = None) -> bool:
    """
    Sleep before the next attempt, using exponential backoff with jitter.

    Args:
        attempt (int): The attempt that just failed, starting at 1.
        max_retries (int): How many retries are allowed after the first attempt.
        base_delay (float): The base delay in seconds.
        key (str): Description of the request, for logging.
        api_exc (Optional[Exception]): The exception raised by the API, if available.

    Returns:
        bool: True if the caller should retry, False otherwise.
    """
    if isinstance(api_exc, NON_RETRYABLE_ERRORS):
        return False
    if attempt > max_retries:
        logger.error("Translation failed for %s after %d attempt(s).", key, attempt)
        return False

    try:
        delay = _retry_after_seconds(api_exc)
    except (TypeError, ValueError) as exc:
        logger.warning("Failed to parse Retry-After header: %s. Falling back to exponential backoff.", exc)
        delay = None
    if delay is None:
        delay = base_delay * (2 ** (attempt - 1)) + random.uniform(0, base_delay)

    logger.info("Retrying %s in %.2f seconds (retry %d/%d)", key, delay, attempt, max_retries)
    await asyncio.sleep(delay)
    return True


class OpenAITranslator:
    """Translate single strings with an OpenAI chat model."""

    def __init__(
            self,
            client: AsyncOpenAI,
            model_name: str = 'gpt-4o',
            temperature: float = 0.7,
            request_timeout: float = 60.0,
            max_retries: int = 3,
            retry_base_delay: float = 1.0,
            rate_limiter: Optional[AsyncLimiter] = None
    ):
        self.client = client
        self.model_name = model_name
        self.temperature = temperature
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.rate_limiter = rate_limiter or AsyncLimiter(max_rate=60, time_period=60)

    async def translate(
            self,
            text: str,
            source_language: str,
            target_language: str,
            context: Optional[str] = None
    ) -> str:
        """
        Ask the model for a translation.

        Returns:
            The raw message content, not normalized.

        Raises:
            TranslationError: If the API keeps failing or returns no content.
        """
        prompt = build_translation_prompt(text, source_language, target_language, context)
        messages = [
            ChatCompletionSystemMessageParam(role="system", content=SYSTEM_PROMPT),
            ChatCompletionUserMessageParam(role="user", content=prompt)
        ]
        description = f"'{text[:40]}' ({source_language} -> {target_language})"

        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.rate_limiter:
                    response = await self.client.chat.completions.create(
                        model=self.model_name,
                        messages=messages,
                        temperature=self.temperature,
                        timeout=self.request_timeout,
                    )
            except (RateLimitError, APITimeoutError, APIConnectionError, APIStatusError, OpenAIError) as api_exc:
                logger.warning("API error occurred: %s - %s", api_exc.__class__.__name__, api_exc)
                if await _handle_retry(attempt, self.max_retries, self.retry_base_delay, description, api_exc):
                    continue
                raise TranslationError(
                    f"Translation request for {description} failed: {api_exc.__class__.__name__} - {api_exc}"
                ) from api_exc
            break

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise TranslationError(f"No response content for {description}.")
        return content

    def for_source(self, source_language: str) -> TaskTranslateFn:
        """Adapt ``translate`` to the single-argument form the orchestrator calls."""
        async def translate_task(task: TranslationTask) -> str:
            return await self.translate(task.source_text, source_language, task.target_language, task.comment)
        return translate_task
