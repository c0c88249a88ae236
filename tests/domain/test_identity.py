"""
Identity normalization and logical identity tests.

Tests cover:
- normalize(): trim, lowercase, whitespace collapse, totality, idempotence
- LogicalIdentity equality across casing/spacing variants
- Identity key stability and separation
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from stock_kernel.domain.identity import IDENTITY_FIELDS, LogicalIdentity, normalize

from tests.conftest import make_row


class TestNormalize:
    def test_collapses_case_and_whitespace(self):
        assert normalize("  ACME   Corp ") == normalize("acme corp") == "acme corp"

    def test_tabs_and_newlines_are_whitespace(self):
        assert normalize("Hex\tBolt\n M8") == "hex bolt m8"

    def test_empty_and_blank(self):
        assert normalize("") == ""
        assert normalize("   \t ") == ""

    def test_none_is_empty(self):
        assert normalize(None) == ""

    def test_inner_punctuation_preserved(self):
        assert normalize("M8-1.25 x 40") == "m8-1.25 x 40"

    @given(st.text())
    def test_idempotent(self, text):
        assert normalize(normalize(text)) == normalize(text)

    @given(st.text())
    def test_no_leading_trailing_or_double_spaces(self, text):
        result = normalize(text)
        assert result == result.strip()
        assert "  " not in result

    @given(st.text(alphabet="abcXYZ-.0"), st.text(alphabet=" \t\n"))
    def test_padding_does_not_change_result(self, word, padding):
        assert normalize(padding + word + padding) == normalize(word)


class TestLogicalIdentity:
    def test_variants_are_equal(self):
        a = LogicalIdentity.from_fields("Apollo", "Hex Bolt", "Zinc", "PCS", "Rack A1")
        b = LogicalIdentity.from_fields(" apollo ", "hex   BOLT", "zinc ", "pcs", "rack a1")
        assert a == b
        assert hash(a) == hash(b)
        assert a.key == b.key

    @pytest.mark.parametrize("field", IDENTITY_FIELDS)
    def test_each_field_participates(self, field):
        base = make_row()
        changed = make_row(**{field: getattr(base, field) + " X"})
        assert base.identity != changed.identity
        assert base.identity.key != changed.identity.key

    def test_provenance_fields_do_not_participate(self):
        a = make_row(supplier_name="Acme", invoice="INV-1", po_no="PO-1", remarks="x")
        b = make_row(supplier_name="Other", invoice="INV-2", po_no="PO-2", remarks=None)
        assert a.identity == b.identity

    def test_uom_is_text_only(self):
        assert make_row(uom="pcs").identity != make_row(uom="pieces").identity

    def test_of_reads_attributes(self):
        row = make_row(project="  Apollo ", part_name="Hex  Bolt")
        identity = LogicalIdentity.of(row)
        assert identity.project == "apollo"
        assert identity.part_name == "hex bolt"

    def test_key_is_sha256_hex(self):
        key = make_row().identity.key
        assert len(key) == 64
        int(key, 16)

    def test_key_separates_field_boundaries(self):
        a = LogicalIdentity.from_fields("a b", "c", "", "pcs", "x")
        b = LogicalIdentity.from_fields("a", "b c", "", "pcs", "x")
        assert a.key != b.key

    def test_identity_is_immutable(self):
        identity = make_row().identity
        with pytest.raises(AttributeError):
            identity.project = "other"
