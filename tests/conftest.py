"""
Pytest configuration and shared fixtures for CalCommand testing.

Provides reference clocks, configuration directories and ready-made
normalizers for unit and integration tests.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest
import yaml

from calcommand.core.config_manager import EngineConfig
from calcommand.scheduling.command_normalizer import CommandNormalizer
from calcommand.scheduling.models import RawUtterance, TimeOfDay

from .fixtures.sample_data import LOCAL_TIMEZONE, REFERENCE_NOW


class FakeDirectory:
    """In-memory contact directory"""

    def __init__(self, entries: Dict[str, List[str]], failing: Optional[Sequence[str]] = ()):
        self.entries = entries
        self.failing = set(failing or ())
        self.lookups: List[str] = []

    def lookup(self, display_name: str) -> List[str]:
        self.lookups.append(display_name)
        if display_name in self.failing:
            raise ConnectionError(f"Directory unavailable for {display_name}")
        return self.entries.get(display_name, [])


# Configuration Fixtures
@pytest.fixture
def temp_config_dir(tmp_path):
    """Temporary directory holding a default configuration file"""
    config_dir = Path(tmp_path) / "config"
    config_dir.mkdir()

    default_config = {
        "defaults": {
            "calendar": "Work",
            "start_time": "10:00",
            "duration_minutes": 30,
        },
        "time_parsing": {
            "ambiguous_hour_default": "pm",
        },
        "timezones": {
            "precedence": {"cst": "America/Chicago"},
        },
        "logging": {
            "level": "debug",
            "log_to_console": False,
        },
    }
    with open(config_dir / "default_config.yaml", "w") as f:
        yaml.dump(default_config, f)

    yield config_dir


@pytest.fixture
def engine_config():
    """Default engine configuration"""
    return EngineConfig()


# Engine Fixtures
@pytest.fixture
def normalizer(engine_config):
    """Normalizer with default configuration and no contact directory"""
    return CommandNormalizer(engine_config)


@pytest.fixture
def reference_now():
    """Wednesday 2025-05-07 10:00 in New York"""
    return REFERENCE_NOW


@pytest.fixture
def make_utterance():
    """Factory for utterances against the reference clock"""
    def factory(text: str, now=REFERENCE_NOW, timezone: str = LOCAL_TIMEZONE,
                default_time: Optional[TimeOfDay] = None,
                default_duration_minutes: Optional[int] = None) -> RawUtterance:
        return RawUtterance(text, now, timezone, default_time, default_duration_minutes)

    return factory


@pytest.fixture
def contact_directory():
    """Directory that knows Alice and fails for Mallory"""
    return FakeDirectory(
        {
            "Alice": ["alice@corp.example.com", "ALICE@corp.example.com"],
            "Bob": ["bob@corp.example.com", "not-an-address"],
        },
        failing=["Mallory"],
    )


# Test Environment Setup
@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Automatically setup test environment for all tests"""
    monkeypatch.setenv("CALCOMMAND_ENV", "testing")
