"""
Status normalization
"""
import pytest

from shipsync.models import ShipmentStatus
from shipsync.services.status_mapping import (
    ECCANG_STATUS_ALIASES,
    ECCANG_STATUS_CODES,
    is_lifecycle_status,
    normalize_status,
    status_value,
)


class TestNormalizeStatus:
    """ECCANG token -> ShipmentStatus"""

    @pytest.mark.parametrize("alias,expected", sorted(ECCANG_STATUS_ALIASES.items()))
    def test_every_alias_maps_to_canonical(self, alias, expected):
        assert normalize_status(alias) == expected

    @pytest.mark.parametrize("code,expected", sorted(ECCANG_STATUS_CODES.items()))
    def test_codes_as_strings_and_numbers(self, code, expected):
        assert normalize_status(code) == expected
        assert normalize_status(int(code)) == expected
        assert normalize_status(float(code)) == expected

    @pytest.mark.parametrize("status", list(ShipmentStatus))
    def test_canonical_names_round_trip(self, status):
        assert normalize_status(status.value) == status
        assert normalize_status(status.value.lower()) == status

    def test_case_and_whitespace_insensitive(self):
        assert normalize_status("  In Transit ") == ShipmentStatus.IN_TRANSIT
        assert normalize_status("CANCELED") == ShipmentStatus.CANCELLED
        assert normalize_status("out-for-delivery") == ShipmentStatus.IN_TRANSIT

    @pytest.mark.parametrize("token", ["on hold", "Customs", "zz-42"])
    def test_unknown_strings_are_uppercased(self, token):
        assert normalize_status(token) == token.upper()

    def test_unknown_numbers_keep_their_string_form(self):
        assert normalize_status(42) == "42"
        assert normalize_status(-1) == "-1"
        assert normalize_status(2.5) == "2.5"

    def test_non_finite_numbers_are_uppercased(self):
        assert normalize_status(float("nan")) == "NAN"
        assert normalize_status(float("inf")) == "INF"

    @pytest.mark.parametrize("token", [None, "", "   ", "\t\n", True, False, [], {}, object()])
    def test_empty_or_unparseable_default_to_created(self, token):
        assert normalize_status(token) == ShipmentStatus.CREATED


class TestStatusHelpers:
    def test_is_lifecycle_status(self):
        assert is_lifecycle_status("DELIVERED")
        assert is_lifecycle_status(ShipmentStatus.EXCEPTION)
        assert not is_lifecycle_status("ON HOLD")

    def test_status_value(self):
        assert status_value(ShipmentStatus.LABEL_READY) == "LABEL_READY"
        assert status_value("CUSTOMS") == "CUSTOMS"
