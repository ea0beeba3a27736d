"""Tests for configuration validation"""
import pytest
from unittest.mock import patch

from ecoquest import config
from ecoquest.exceptions import ConfigurationError


def test_defaults_are_valid():
    """Default configuration passes validation"""
    config.validate_config()


def test_default_level_size_and_policy():
    assert config.LEVEL_SIZE > 0
    assert config.STREAK_RESET_POLICY in ("zero", "one")


@pytest.mark.parametrize("key,value", [
    ("DATABASE_URL", ""),
    ("LEVEL_SIZE", 0),
    ("LEVEL_SIZE", -500),
    ("STREAK_RESET_POLICY", "forgiving"),
    ("PERSISTENCE_MAX_RETRIES", -1),
])
def test_invalid_configuration(key, value):
    with patch.object(config, key, value):
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_config()

    assert exc_info.value.config_key == key


def test_storage_credentials_optional():
    with patch.object(config, "SUPABASE_URL", ""), patch.object(config, "SUPABASE_SERVICE_KEY", ""):
        config.validate_config()
