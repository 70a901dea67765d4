"""Tests for client settings."""

import pytest

from vndb_mcp.config import DEFAULT_HOST, DEFAULT_PORT, ClientConfig, credentials_from_env


def test_defaults():
    config = ClientConfig()
    assert config.host == DEFAULT_HOST
    assert config.port == DEFAULT_PORT
    assert config.protocol == 1


def test_merged_overrides_only_given_values():
    """None values fall back to the existing setting."""
    config = ClientConfig().merged({"host": "test.com", "port": None})
    assert config.host == "test.com"
    assert config.port == DEFAULT_PORT


def test_merged_returns_new_instance():
    base = ClientConfig()
    merged = base.merged({"client": "other"})
    assert base.client != "other"
    assert merged.client == "other"


def test_merged_unknown_key():
    """Unknown settings should raise."""
    with pytest.raises(ValueError):
        ClientConfig().merged({"hostname": "x"})


def test_from_env():
    config = ClientConfig.from_env({"VNDB_HOST": "localhost", "VNDB_PORT": "19534"})
    assert config.host == "localhost"
    assert config.port == 19534
    assert config.client == ClientConfig().client


def test_credentials_from_env():
    env = {"VNDB_USERNAME": "u", "VNDB_PASSWORD": ""}
    assert credentials_from_env(env) == ("u", None)
