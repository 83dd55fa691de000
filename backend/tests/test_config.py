from __future__ import annotations

import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings  # noqa: E402


def test_default_configuration_is_valid():
    Settings().validate_runtime_configuration()


def test_out_of_range_default_boundary_hour_is_rejected():
    settings = Settings(DEFAULT_DAY_BOUNDARY_HOUR=24)
    with pytest.raises(RuntimeError) as excinfo:
        settings.validate_runtime_configuration()
    assert "DEFAULT_DAY_BOUNDARY_HOUR" in str(excinfo.value)


def test_out_of_range_week_start_day_is_rejected():
    with pytest.raises(RuntimeError):
        Settings(DEFAULT_WEEK_START_DAY=7).validate_runtime_configuration()
