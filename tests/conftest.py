"""Shared pytest fixtures for all tests."""

import pytest

from cli.config import Config
from engine.codec import AeadCodec, generate_key
from engine.config import EngineConfig
from engine.lifecycle import StorageLifecycleManager


@pytest.fixture
def master_key():
    """Random 32-byte master key."""
    return generate_key()


@pytest.fixture
def codec(master_key):
    return AeadCodec(master_key)


@pytest.fixture
def engine_config(tmp_path, master_key):
    """
    Engine configuration rooted in a temporary data directory.

    Args:
        tmp_path: pytest tmp_path fixture
        master_key: Master key fixture

    Returns:
        EngineConfig instance
    """
    return EngineConfig.build(
        master_key=master_key,
        data_dir=tmp_path / 'data',
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def storage(engine_config):
    """
    Lifecycle manager over the temporary data directory.

    Args:
        engine_config: Engine configuration fixture

    Returns:
        StorageLifecycleManager with its directories created
    """
    return StorageLifecycleManager.from_config(engine_config)


@pytest.fixture
def temp_config(tmp_path):
    """
    Create temporary CLI config instance.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Config instance with temp config file
    """
    return Config(tmp_path / '.vault' / 'config.json')


@pytest.fixture
def sample_file(tmp_path):
    """
    Create a sample file for testing file uploads.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to sample text file
    """
    file_path = tmp_path / 'test.txt'
    file_path.write_text('Sample content for testing')
    return file_path
