"""Shared fixtures for the reconciliation tests."""

from datetime import date
from decimal import Decimal

import pytest

from order_recon.config import build_config, get_default_config, _deep_merge
from order_recon.matching.engine import ReconciliationEngine
from order_recon.models.record import OrderRecord, RecordOrigin

DAY = date(2024, 1, 5)


def make_records(origin: RecordOrigin, *items) -> list[OrderRecord]:
    """Build records from (amount, date) pairs; seq follows argument order."""
    return [
        OrderRecord(origin=origin, amount=Decimal(str(amount)), date=day, seq=i)
        for i, (amount, day) in enumerate(items)
    ]


def pos(*items) -> list[OrderRecord]:
    return make_records(RecordOrigin.POS, *items)


def src(*items) -> list[OrderRecord]:
    return make_records(RecordOrigin.SOURCE, *items)


def config_with(overrides: dict):
    return build_config(_deep_merge(get_default_config(), overrides))


@pytest.fixture
def config():
    return build_config(get_default_config())


@pytest.fixture
def engine(config):
    return ReconciliationEngine(config)


@pytest.fixture
def exact_tolerance_engine():
    """Engine whose looser stages only accept identical amounts."""
    return ReconciliationEngine(
        config_with({"matching": {"tolerance": {"amount": None, "percent": None}}})
    )
