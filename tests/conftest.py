import os
from datetime import date
from pathlib import Path

import pytest

from accessgate.observability.internal_metrics import reset


TODAY = date(2026, 1, 15)
SAMPLES_DIR = Path(__file__).resolve().parents[1] / "samples"


def pytest_configure(config):
    os.environ.setdefault("ACCESSGATE_LOG_FORMAT", "text")
    os.environ.setdefault("ACCESSGATE_LEDGER_PATH", "data/test_accessgate_ledger.db")


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset()
    yield
    reset()


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def sample_rules_path() -> Path:
    return SAMPLES_DIR / "ruleset.yaml"


@pytest.fixture
def sample_subjects_path() -> Path:
    return SAMPLES_DIR / "subjects.yaml"
