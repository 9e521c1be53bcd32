"""Unit tests for loading, merging and saving catalogs."""
import json
import os
from unittest.mock import patch

import pytest

from ai_localize.catalog_store import (
    CatalogStore,
    CatalogWriter,
    merge_results,
    parse_catalog,
    serialize_catalog,
)
from ai_localize.errors import CatalogFormatError, ConfigurationError, MergeError
from ai_localize.models import Catalog, TranslationState
from tests.sample_catalog import build_catalog_data, file_bytes, read_json, write_catalog


class TestLoad:

    def test_load_valid_catalog(self, catalog_file):
        store = CatalogStore.load(catalog_file)

        assert store.source_language == "en"
        assert store.target_languages() == ["es", "fr"]
        assert set(store.catalog.entries) == {"Hello", "Goodbye", "Empty", "%lld items", "Internal ID"}

    def test_missing_file_is_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError):
            CatalogStore.load(str(tmp_path / "missing.xcstrings"))

    def test_invalid_json_is_format_error(self, tmp_path):
        path = tmp_path / "broken.xcstrings"
        path.write_text("{ not json", encoding='utf-8')
        with pytest.raises(CatalogFormatError):
            CatalogStore.load(str(path))

    def test_schema_violation_is_format_error(self, tmp_path):
        data = build_catalog_data()
        data["strings"]["Hello"]["localizations"]["es"]["stringUnit"]["state"] = "done"
        path = write_catalog(tmp_path / "bad.xcstrings", data)

        with pytest.raises(CatalogFormatError) as exc_info:
            CatalogStore.load(path)
        assert "Hello" in str(exc_info.value)

    def test_missing_source_language_is_format_error(self):
        with pytest.raises(CatalogFormatError):
            parse_catalog({"strings": {}})


class TestMergeResults:

    def test_adds_and_overwrites_translations(self):
        catalog = Catalog.from_dict(build_catalog_data())

        merged = merge_results(catalog, {"Hello": {"es": "¡Hola!"}, "Goodbye": {"es": "Adiós"}})

        hello_es = merged.entries["Hello"].localizations["es"].string_unit
        assert hello_es.value == "¡Hola!"
        assert hello_es.state is TranslationState.TRANSLATED
        goodbye_es = merged.entries["Goodbye"].localizations["es"].string_unit
        assert (goodbye_es.value, goodbye_es.state) == ("Adiós", TranslationState.TRANSLATED)

    def test_does_not_modify_input(self):
        catalog = Catalog.from_dict(build_catalog_data())
        merge_results(catalog, {"Hello": {"es": "¡Hola!"}})
        assert catalog.entries["Hello"].localizations["es"].string_unit.value == "Hola"

    def test_creates_localizations_for_bare_entry(self):
        catalog = Catalog.from_dict(build_catalog_data())
        merged = merge_results(catalog, {"Empty": {"de": "Leer"}})
        assert merged.entries["Empty"].localizations["de"].string_unit.value == "Leer"

    def test_unknown_keys_are_dropped(self):
        catalog = Catalog.from_dict(build_catalog_data())
        merged = merge_results(catalog, {"Nope": {"es": "No"}})
        assert "Nope" not in merged.entries
        assert merged.to_dict() == catalog.to_dict()

    def test_pass_through_fields_are_preserved(self):
        catalog = Catalog.from_dict(build_catalog_data())

        merged = merge_results(catalog, {"%lld items": {"fr": "%lld articles", "en": "%lld things"}})

        data = merged.to_dict()["strings"]["%lld items"]
        assert data["extractionState"] == "manual"
        assert data["localizations"]["fr"]["extractionState"] == "manual"
        assert data["localizations"]["fr"]["stringUnit"] == {"state": "translated", "value": "%lld articles"}
        assert data["localizations"]["en"]["variations"] == \
            build_catalog_data()["strings"]["%lld items"]["localizations"]["en"]["variations"]

    def test_merge_is_monotonic(self):
        catalog = Catalog.from_dict(build_catalog_data())
        before = {key: set(entry.localizations or {}) for key, entry in catalog.entries.items()}

        merged = merge_results(catalog, {"Hello": {"de": "Hallo"}, "Empty": {"es": "Vacío"}, "Ghost": {"es": "x"}})

        for key, languages in before.items():
            assert key in merged.entries
            assert languages <= set(merged.entries[key].localizations or {})


class TestSave:

    def test_round_trip_preserves_unknown_fields(self, tmp_path):
        data = build_catalog_data()
        data["customTopLevel"] = {"a": 1}
        data["strings"]["Hello"]["localizations"]["es"]["customField"] = True
        path = write_catalog(tmp_path / "Localizable.xcstrings", data)

        store = CatalogStore.load(path)
        store.save()

        assert read_json(path) == data

    def test_save_uses_sorted_stable_formatting(self, catalog_file):
        store = CatalogStore.load(catalog_file)
        store.save()
        first = file_bytes(catalog_file)

        CatalogStore.load(catalog_file).save()

        assert file_bytes(catalog_file) == first
        text = first.decode('utf-8')
        assert '"sourceLanguage" : "en"' in text
        assert "éléments" in text
        assert text.index('"%lld items"') < text.index('"Empty"') < text.index('"Goodbye"')

    def test_serialize_catalog_matches_json_dumps(self):
        catalog = Catalog.from_dict(build_catalog_data())
        assert json.loads(serialize_catalog(catalog)) == catalog.to_dict()

    def test_merge_then_save(self, catalog_file):
        store = CatalogStore.load(catalog_file)

        updated = store.merge({"Goodbye": {"es": "Adiós", "fr": "Au revoir"}, "Ghost": {"es": "Fantasma"}})
        store.save()

        assert updated == 2
        saved = read_json(catalog_file)
        assert saved["strings"]["Goodbye"]["localizations"]["fr"]["stringUnit"]["value"] == "Au revoir"
        assert "Ghost" not in saved["strings"]

    def test_failed_write_leaves_original_untouched(self, catalog_file, tmp_path):
        original = file_bytes(catalog_file)
        store = CatalogStore.load(catalog_file)
        store.merge({"Goodbye": {"es": "Adiós"}})

        with patch('ai_localize.catalog_store.os.replace', side_effect=OSError("disk full")):
            with pytest.raises(MergeError):
                store.save()

        assert file_bytes(catalog_file) == original
        assert os.listdir(tmp_path) == ["Localizable.xcstrings"]

    def test_failed_commit_keeps_catalog_unchanged(self, catalog_file):
        store = CatalogStore.load(catalog_file)

        with patch('ai_localize.catalog_store.os.replace', side_effect=OSError("disk full")):
            with pytest.raises(MergeError):
                store.commit({"Goodbye": {"es": "Adiós"}})
        assert "es" not in store.catalog.entries["Goodbye"].localizations

        assert store.commit({"Empty": {"fr": "Vide"}}) == 1
        saved = read_json(catalog_file)
        assert "es" not in saved["strings"]["Goodbye"]["localizations"]
        assert saved["strings"]["Empty"]["localizations"]["fr"]["stringUnit"]["value"] == "Vide"


class TestCatalogWriter:

    @pytest.mark.asyncio
    async def test_apply_merges_and_saves(self, catalog_file):
        store = CatalogStore.load(catalog_file)

        async with CatalogWriter(store) as writer:
            first = await writer.apply({"Goodbye": {"es": "Adiós"}})
            second = await writer.apply({"Empty": {"es": "Vacío", "fr": "Vide"}})

        assert (first, second) == (1, 2)
        saved = read_json(catalog_file)
        assert saved["strings"]["Goodbye"]["localizations"]["es"]["stringUnit"]["value"] == "Adiós"
        assert saved["strings"]["Empty"]["localizations"]["fr"]["stringUnit"]["value"] == "Vide"

    @pytest.mark.asyncio
    async def test_apply_propagates_save_errors(self, catalog_file):
        store = CatalogStore.load(catalog_file)

        async with CatalogWriter(store) as writer:
            with patch.object(store, 'save', side_effect=MergeError("boom")):
                with pytest.raises(MergeError):
                    await writer.apply({"Goodbye": {"es": "Adiós"}})
            # the writer keeps serving requests after a failure
            assert await writer.apply({"Goodbye": {"fr": "Au revoir"}}) == 1

        saved = read_json(catalog_file)["strings"]["Goodbye"]["localizations"]
        assert saved["fr"]["stringUnit"]["value"] == "Au revoir"
        assert "es" not in saved
        assert "es" not in store.catalog.entries["Goodbye"].localizations

    @pytest.mark.asyncio
    async def test_apply_requires_running_writer(self, catalog_file):
        writer = CatalogWriter(CatalogStore.load(catalog_file))
        with pytest.raises(RuntimeError):
            await writer.apply({})
