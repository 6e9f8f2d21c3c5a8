"""Tests for the vendor registry."""

import pytest

from app.core.errors import ConfigurationError
from app.services.llm.base import VendorId
from app.services.llm.registry import find_vendor_by_id, list_vendors


def test_every_vendor_id_is_registered():
    for vendor_id in VendorId:
        vendor = find_vendor_by_id(vendor_id.value)
        assert vendor is not None
        assert vendor.id is vendor_id


def test_unknown_vendor_is_a_miss():
    assert find_vendor_by_id("anthropic") is None
    assert find_vendor_by_id(None) is None


def test_vendors_sorted_by_rank():
    ranks = [v.rank for v in list_vendors()]
    assert ranks == sorted(ranks)
    assert [v.instance_limit for v in list_vendors()] == [1, 1, 1, 2, 1]


@pytest.mark.parametrize("vendor", list_vendors(), ids=lambda v: v.id.value)
def test_normalize_setup_is_idempotent(vendor):
    once = vendor.normalize_setup({})
    assert vendor.normalize_setup(once) == once
    assert vendor.normalize_setup(None) == once


@pytest.mark.parametrize("vendor", list_vendors(), ids=lambda v: v.id.value)
def test_normalize_setup_keeps_user_values(vendor):
    defaults = vendor.normalize_setup()
    field = next(iter(defaults))
    setup = vendor.normalize_setup({field: "custom"})
    assert setup[field] == "custom"
    assert vendor.get_access(setup).dialect == vendor.id.value


@pytest.mark.parametrize("vendor", list_vendors(), ids=lambda v: v.id.value)
def test_normalize_setup_treats_none_as_missing(vendor):
    defaults = vendor.normalize_setup()
    assert vendor.normalize_setup({field: None for field in defaults}) == defaults
    assert vendor.get_access({field: None for field in defaults}).dialect == vendor.id.value


@pytest.mark.parametrize("vendor", list_vendors(), ids=lambda v: v.id.value)
def test_get_access_rejects_malformed_setup(vendor):
    field = next(iter(vendor.normalize_setup()))
    with pytest.raises(ConfigurationError, match=field):
        vendor.get_access({field: ["not", "a", "string"]})
