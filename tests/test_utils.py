"""
Tests for formatting and normalization utilities.
"""

from decimal import Decimal

import pytest

from crm_core.config import CRMConfig
from crm_core.constants import DEFAULT_PAGE_SIZE, PROPERTY_TYPE_LABELS, SUBSCRIPTION_PRICE_CENTS, TRIAL_DAYS, label_for
from crm_core.properties.models import PropertyType
from crm_core.shared_services.utils import (
    format_currency,
    format_phone,
    is_valid_phone,
    normalize_phone,
    normalize_text,
    slugify,
    to_cents,
)


class TestNormalizeText:
    def test_strips_accents_and_case(self):
        assert normalize_text("São Paulo") == "sao paulo"
        assert normalize_text("FLORIANÓPOLIS") == "florianopolis"

    def test_collapses_whitespace(self):
        assert normalize_text("  Jardim   Botânico  ") == "jardim botanico"

    def test_blank_is_none(self):
        assert normalize_text("   ") is None
        assert normalize_text(None) is None


class TestPhone:
    @pytest.mark.parametrize(
        "phone",
        ["(11) 98765-4321", "11987654321", "(11) 3456-7890", "11 3456 7890", "(48)99876-5432"],
    )
    def test_valid_phones(self, phone):
        assert is_valid_phone(phone)

    @pytest.mark.parametrize("phone", ["123", "(11) 9876-54321", "abc", "+55 11 98765-4321"])
    def test_invalid_phones(self, phone):
        assert not is_valid_phone(phone)

    def test_normalize_keeps_digits(self):
        assert normalize_phone("(11) 98765-4321") == "11987654321"

    def test_format_mobile_and_landline(self):
        assert format_phone("11987654321") == "(11) 98765-4321"
        assert format_phone("1134567890") == "(11) 3456-7890"
        assert format_phone("123") == "123"


class TestMoney:
    def test_to_cents_rounds_half_up(self):
        assert to_cents("350000") == 35_000_000
        assert to_cents(Decimal("49.90")) == 4990
        assert to_cents("0.005") == 1
        assert to_cents(1.015) == 102

    def test_format_currency(self):
        assert format_currency(4900) == "R$ 49,00"
        assert format_currency(123456) == "R$ 1.234,56"
        assert format_currency(35_000_000) == "R$ 350.000,00"
        assert format_currency(-150) == "-R$ 1,50"


def test_slugify_agency_name():
    assert slugify("Imobiliária Sol & Mar") == "imobiliaria-sol-mar"


def test_label_for_falls_back_to_raw_value():
    assert label_for(PROPERTY_TYPE_LABELS, PropertyType.HOUSE) == "Casa"
    assert label_for(PROPERTY_TYPE_LABELS, "LAND") == "LAND"


def test_plan_defaults_come_from_constants(monkeypatch):
    for name in ("SUBSCRIPTION_PRICE_CENTS", "TRIAL_DAYS", "DEFAULT_PAGE_SIZE"):
        monkeypatch.delenv(name, raising=False)

    config = CRMConfig(_env_file=None)

    assert config.subscription_price_cents == SUBSCRIPTION_PRICE_CENTS
    assert config.subscription_price == 49.0
    assert config.trial_days == TRIAL_DAYS
    assert config.default_page_size == DEFAULT_PAGE_SIZE
