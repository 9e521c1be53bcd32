"""
Loading, merging and saving string catalogs.

All writes to a catalog go through ``CatalogStore.merge`` and
``CatalogStore.save``. When several coroutines may produce results for the same
file, ``CatalogWriter`` serializes their merges through a single queue so the
in-memory catalog and the file on disk are only ever touched by one writer.
"""
import asyncio
import copy
import json
import logging
import os
import shutil
import tempfile
from typing import Any, Dict, List, Optional

import jsonschema

from ai_localize.errors import CatalogFormatError, ConfigurationError, MergeError
from ai_localize.models import (
    Catalog,
    Localization,
    StringUnit,
    TranslationResults,
    TranslationState,
)
from ai_localize.reconciler import find_target_languages

logger = logging.getLogger(__name__)

_STRING_UNIT_SCHEMA = {
    "type": "object",
    "required": ["value"],
    "properties": {
        "state": {"enum": [state.value for state in TranslationState]},
        "value": {"type": "string"}
    }
}

# The subset of the xcstrings format the tool relies on. Unknown keys are allowed
# everywhere so that files written by newer Xcode versions still load.
CATALOG_SCHEMA = {
    "type": "object",
    "required": ["sourceLanguage", "strings"],
    "properties": {
        "sourceLanguage": {"type": "string", "minLength": 1},
        "version": {"type": "string"},
        "strings": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "comment": {"type": "string"},
                    "extractionState": {"type": "string"},
                    "shouldTranslate": {"type": "boolean"},
                    "localizations": {
                        "type": "object",
                        "additionalProperties": {
                            "type": "object",
                            "properties": {
                                "stringUnit": _STRING_UNIT_SCHEMA,
                                "variations": {"type": "object"},
                                "extractionState": {"type": "string"}
                            }
                        }
                    }
                }
            }
        }
    }
}


def serialize_catalog(catalog: Catalog) -> str:
    """Render a catalog the way Xcode does: sorted keys, two-space indent, ' : ' separators."""
    return json.dumps(
        catalog.to_dict(),
        ensure_ascii=False,
        indent=2,
        sort_keys=True,
        separators=(',', ' : ')
    ) + "\n"


def parse_catalog(data: Dict[str, Any], source: str = "<memory>") -> Catalog:
    """
    Validate a decoded JSON document and build a ``Catalog`` from it.

    Raises:
        CatalogFormatError: If the document does not match ``CATALOG_SCHEMA``.
    """
    try:
        jsonschema.validate(instance=data, schema=CATALOG_SCHEMA)
    except jsonschema.ValidationError as schema_exc:
        location = "/".join(str(part) for part in schema_exc.absolute_path) or "<root>"
        raise CatalogFormatError(
            f"Catalog '{source}' does not match the xcstrings schema at '{location}': {schema_exc.message}"
        ) from schema_exc
    return Catalog.from_dict(data)


def merge_results(catalog: Catalog, results: TranslationResults) -> Catalog:
    """
    Return a copy of ``catalog`` with the translated texts applied.

    Every (key, language) pair becomes a ``translated`` string unit holding the
    new text. Variations, extraction metadata and unknown fields of the
    localization are kept. Keys that are not in the catalog are ignored.
    Nothing is ever removed.

    Args:
        catalog: The catalog to update. It is not modified.
        results: Mapping of key -> language -> translated text.

    Returns:
        The updated catalog.
    """
    merged = copy.deepcopy(catalog)
    for key, translations in results.items():
        entry = merged.entries.get(key)
        if entry is None:
            logger.debug("Dropping translations for unknown key '%s'.", key)
            continue
        if entry.localizations is None:
            entry.localizations = {}

        for language, text in translations.items():
            localization = entry.localizations.get(language)
            if localization is None:
                entry.localizations[language] = Localization(
                    string_unit=StringUnit(value=text, state=TranslationState.TRANSLATED)
                )
            elif localization.string_unit is None:
                localization.string_unit = StringUnit(value=text, state=TranslationState.TRANSLATED)
            else:
                localization.string_unit.value = text
                localization.string_unit.state = TranslationState.TRANSLATED
    return merged


def _count_updates(catalog: Catalog, results: TranslationResults) -> int:
    return sum(len(translations) for key, translations in results.items() if key in catalog.entries)


class CatalogStore:
    """An in-memory catalog bound to the file it was loaded from."""

    def __init__(self, path: str, catalog: Catalog):
        self.path = path
        self.catalog = catalog

    @classmethod
    def load(cls, path: str) -> "CatalogStore":
        """
        Load and validate a catalog file.

        Raises:
            ConfigurationError: If the file is missing or cannot be read.
            CatalogFormatError: If the file is not valid xcstrings JSON.
        """
        if not os.path.isfile(path):
            raise ConfigurationError(f"Catalog file not found: {path}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as json_exc:
            raise CatalogFormatError(f"Catalog '{path}' is not valid JSON: {json_exc}") from json_exc
        except UnicodeDecodeError as decode_exc:
            raise CatalogFormatError(f"Catalog '{path}' is not valid UTF-8: {decode_exc}") from decode_exc
        except OSError as io_exc:
            raise ConfigurationError(f"Could not read catalog '{path}': {io_exc}") from io_exc

        catalog = parse_catalog(data, source=path)
        logger.debug("Loaded %d entries from '%s'.", len(catalog.entries), path)
        return cls(path, catalog)

    @property
    def source_language(self) -> str:
        return self.catalog.source_language

    def target_languages(self) -> List[str]:
        return find_target_languages(self.catalog)

    def merge(self, results: TranslationResults) -> int:
        """
        Apply translations to the in-memory catalog.

        Returns:
            The number of localizations written.
        """
        updated = _count_updates(self.catalog, results)
        self.catalog = merge_results(self.catalog, results)
        return updated

    def commit(self, results: TranslationResults) -> int:
        """
        Merge ``results`` and save, keeping the in-memory catalog unchanged
        unless the save succeeds.

        Returns:
            The number of localizations written.

        Raises:
            MergeError: If the file could not be written.
        """
        updated = _count_updates(self.catalog, results)
        merged = merge_results(self.catalog, results)
        self.save(merged)
        self.catalog = merged
        return updated

    def save(self, catalog: Optional[Catalog] = None) -> None:
        """
        Write the catalog back to its file atomically.

        The content goes to a temporary file in the same directory which then
        replaces the original, so readers see either the old or the new file.

        Args:
            catalog: The catalog to write instead of ``self.catalog``.

        Raises:
            MergeError: If the file could not be written.
        """
        content = serialize_catalog(catalog if catalog is not None else self.catalog)
        directory = os.path.dirname(os.path.abspath(self.path))
        temp_path: Optional[str] = None
        try:
            with tempfile.NamedTemporaryFile(
                    mode='w',
                    encoding='utf-8',
                    dir=directory,
                    prefix=f".{os.path.basename(self.path)}.",
                    suffix='.tmp',
                    delete=False
            ) as temp_f:
                temp_path = temp_f.name
                temp_f.write(content)
                temp_f.flush()
                os.fsync(temp_f.fileno())
            if os.path.exists(self.path):
                shutil.copymode(self.path, temp_path)
            os.replace(temp_path, self.path)
        except OSError as io_exc:
            if temp_path and os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError as cleanup_exc:
                    logger.warning("Could not delete temporary file '%s': %s", temp_path, cleanup_exc)
            raise MergeError(f"Failed to write catalog '{self.path}': {io_exc}") from io_exc
        logger.info("Saved catalog to '%s'.", self.path)


class CatalogWriter:
    """
    Single writer for a ``CatalogStore``.

    Merge requests are queued and applied one at a time by a background task,
    each followed by a save. A request whose save fails leaves the catalog as
    it was, so later requests never write its results. Use as an async
    context manager::

        async with CatalogWriter(store) as writer:
            await writer.apply(results)
    """

    def __init__(self, store: CatalogStore):
        self.store = store
        self._queue: "asyncio.Queue[tuple]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "CatalogWriter":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            results, future = await self._queue.get()
            try:
                updated = self.store.commit(results)
            except Exception as exc:
                if not future.cancelled():
                    future.set_exception(exc)
            else:
                if not future.cancelled():
                    future.set_result(updated)
            finally:
                self._queue.task_done()

    async def apply(self, results: TranslationResults) -> int:
        """
        Queue a merge and wait until it has been applied and saved.

        Returns:
            The number of localizations written.

        Raises:
            MergeError: If saving failed.
        """
        if self._worker is None:
            raise RuntimeError("CatalogWriter is not running; use it as an async context manager.")
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((results, future))
        return await future

    async def close(self) -> None:
        """Wait for queued merges to finish and stop the worker."""
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
