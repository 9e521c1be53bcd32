"""Command line entry point: ``ai-localize translate`` and ``ai-localize info``."""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from ai_localize.app_config import (
    create_openai_client,
    create_rate_limiter,
    load_app_config,
    resolve_api_key,
)
from ai_localize.catalog_store import CatalogStore
from ai_localize.errors import ConfigurationError, LocalizeError
from ai_localize.logging_config import set_verbose
from ai_localize.translate_catalog import parse_language_list, summarize_catalog, translate_catalog
from ai_localize.translation_service import OpenAITranslator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-localize",
        description="Translate Xcode String Catalog (.xcstrings) files with an OpenAI model.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    translate = subparsers.add_parser("translate", help="Translate an xcstrings file to the given languages")
    translate.add_argument("file", help="Path to the xcstrings file")
    translate.add_argument("-l", "--languages", help="Target languages (comma-separated)")
    translate.add_argument("-a", "--api-key", help="OpenAI API key (defaults to OPENAI_API_KEY)")
    translate.add_argument("-m", "--model", help="OpenAI model to use")
    translate.add_argument("-b", "--batch-size", type=int, help="Number of strings translated in parallel per language")
    translate.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    translate.add_argument("-c", "--config", help="Path to the YAML configuration file")
    translate.add_argument("--dry-run", action="store_true", help="Report what would be translated without calling the API")
    translate.add_argument("--keep-partial", action="store_true",
                           help="Save successful translations even if some language fails")
    translate.add_argument("--no-progress", action="store_true", help="Hide the progress bar")

    info = subparsers.add_parser("info", help="Show information about an xcstrings file")
    info.add_argument("file", help="Path to the xcstrings file")
    info.add_argument("-c", "--config", help="Path to the YAML configuration file")

    return parser


async def run_translate(args: argparse.Namespace) -> int:
    config = load_app_config(args.config)
    set_verbose(args.verbose)

    batch_size = args.batch_size if args.batch_size is not None else config.batch_size
    if batch_size < 1:
        raise ConfigurationError(f"Batch size must be at least 1, got {batch_size}")
    model_name = args.model or config.model_name
    dry_run = args.dry_run or config.dry_run

    api_key = None if dry_run else resolve_api_key(args.api_key)
    store = CatalogStore.load(args.file)

    client = None
    translate = None
    if not dry_run:
        client = create_openai_client(api_key)
        translator = OpenAITranslator(
            client,
            model_name=model_name,
            temperature=config.temperature,
            request_timeout=config.request_timeout,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay,
            rate_limiter=create_rate_limiter(config)
        )
        translate = translator.for_source(store.source_language)

    try:
        await translate_catalog(
            store,
            translate,
            target_languages=parse_language_list(args.languages),
            batch_size=batch_size,
            pacing_delay=config.pacing_delay,
            persist_partial_results=args.keep_partial or config.persist_partial_results,
            dry_run=dry_run,
            model_name=model_name,
            show_progress=not args.no_progress
        )
    finally:
        if client is not None:
            await client.close()
    return 0


def run_info(args: argparse.Namespace) -> int:
    load_app_config(args.config)
    store = CatalogStore.load(args.file)
    summary = summarize_catalog(store.catalog)

    print(f"Source language: {summary.source_language}")
    print(f"Target languages: {', '.join(summary.target_languages)}")
    print("\nTranslation status:")
    for language in summary.target_languages:
        status = summary.languages[language]
        percentage = status.translated / summary.total_strings * 100 if summary.total_strings else 0
        print(f"{language}: {status.translated}/{summary.total_strings} ({int(percentage)}%), "
              f"{status.untranslated} untranslated")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "translate":
            return asyncio.run(run_translate(args))
        return run_info(args)
    except LocalizeError as exc:
        logger.error("Error: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
