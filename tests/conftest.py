import pytest

from tests.sample_catalog import build_catalog_data, write_catalog


@pytest.fixture
def catalog_data():
    return build_catalog_data()


@pytest.fixture
def catalog_file(tmp_path, catalog_data):
    """Write the sample catalog to a temporary Localizable.xcstrings file."""
    return write_catalog(tmp_path / "Localizable.xcstrings", catalog_data)


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point the config lookup at a temp file so a developer's config.yaml is not picked up."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text("pacing_delay: 0\nlogging:\n  log_to_console: false\n", encoding='utf-8')
    monkeypatch.setenv('AI_LOCALIZE_CONFIG_FILE', str(config_path))
    monkeypatch.delenv('AI_LOCALIZE_MODEL_NAME', raising=False)
    monkeypatch.delenv('AI_LOCALIZE_BATCH_SIZE', raising=False)
    return str(config_path)
