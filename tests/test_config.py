"""
Tests for configuration loading and store root resolution.
"""

from pathlib import Path

import pytest

from keyage.config import (
    CONFIG_FILE_NAME,
    DEFAULT_STORE_DIR_NAME,
    Configuration,
    StoreConfig,
    resolve_store_root,
)
from keyage.errors import ConfigLoadError


def test_store_root_from_environment(tmp_path):
    assert resolve_store_root({"KEYAGE_STORE": str(tmp_path)}) == tmp_path


def test_store_root_default():
    root = resolve_store_root({})
    assert root.name == DEFAULT_STORE_DIR_NAME
    assert root.is_absolute()


def test_configuration_round_trip(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    Configuration(identifier='C:\\keys\\"id".txt', recipient="age1abc").save(path)
    loaded = Configuration.load(path)
    assert loaded.identifier == 'C:\\keys\\"id".txt'
    assert loaded.recipient == "age1abc"


def test_configuration_round_trip_control_characters(tmp_path):
    """Characters TOML forbids raw in strings are escaped on save."""
    path = tmp_path / CONFIG_FILE_NAME
    identifier = "keys\x7f\x01\tid.txt"
    Configuration(identifier=identifier, recipient="age1abc").save(path)
    assert Configuration.load(path).identifier == identifier


def test_configuration_missing_file(tmp_path):
    with pytest.raises(ConfigLoadError):
        Configuration.load(tmp_path / CONFIG_FILE_NAME)


def test_configuration_invalid_toml(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text("identifier = \n")
    with pytest.raises(ConfigLoadError):
        Configuration.load(path)


def test_configuration_wrong_type(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text("identifier = 3\n")
    with pytest.raises(ConfigLoadError):
        Configuration.load(path)


@pytest.mark.parametrize("content, missing", [
    ('identifier = "id.txt"\n', "recipient"),
    ('recipient = "age1abc"\n', "identity"),
])
def test_store_config_requires_both_fields(tmp_path, content, missing):
    (tmp_path / CONFIG_FILE_NAME).write_text(content)
    with pytest.raises(ConfigLoadError, match=missing):
        StoreConfig.from_root(tmp_path)


def test_store_config_relative_identity(tmp_path):
    (tmp_path / CONFIG_FILE_NAME).write_text('identifier = "id.txt"\nrecipient = "age1abc"\n')
    config = StoreConfig.from_root(tmp_path)
    assert config.identity_path == tmp_path / "id.txt"
    assert config.recipient == "age1abc"

    (tmp_path / CONFIG_FILE_NAME).write_text('identifier = "/abs/id.txt"\nrecipient = "age1abc"\n')
    assert StoreConfig.from_root(tmp_path).identity_path == Path("/abs/id.txt")
