"""
Tests for revision numbering (REV.A, REV.B, ...).
"""
import string

import pytest

from quotereview.db.models import FIRST_REVISION, Quotation, QuotationVersion, next_revision


class TestNextRevision:
    """Successor computation on raw identifiers."""

    def test_no_previous_revision_starts_at_a(self):
        assert next_revision(None) == "REV.A"
        assert next_revision("") == "REV.A"

    @pytest.mark.parametrize("letter", list(string.ascii_uppercase[:-1]))
    def test_increments_letter(self, letter):
        assert next_revision(f"REV.{letter}") == f"REV.{chr(ord(letter) + 1)}"

    def test_sequence_is_strictly_increasing(self):
        current = FIRST_REVISION
        seen = [current]
        for _ in range(25):
            current = next_revision(current)
            seen.append(current)
        assert seen == [f"REV.{c}" for c in string.ascii_uppercase]
        assert seen == sorted(seen)

    def test_z_overflows_with_marker(self):
        assert next_revision("REV.Z") == "REV.Z1"

    def test_overflow_marker_is_configurable(self):
        assert next_revision("REV.Z", overflow_marker="-OVF") == "REV.Z-OVF"

    def test_overflow_value_restarts_at_a(self):
        """The overflow identifier does not parse as REV.<letter>, so numbering restarts."""
        assert next_revision("REV.Z1") == "REV.A"

    @pytest.mark.parametrize("value", ["rev.b", "REV.", "REV.AB", "Version 2", "REV-B"])
    def test_unparseable_restarts_at_a(self, value):
        assert next_revision(value) == "REV.A"


class TestQuotationGetNextVersion:
    """Quotation.get_next_version reads the last element of ``versions``."""

    def _quotation(self, *versions):
        q = Quotation(document_number="D1", project_number="P", title="T", created_by=1)
        for v in versions:
            q.versions.append(QuotationVersion(version=v, pdf_url="/x.pdf", uploaded_by=1))
        return q

    def test_empty_quotation(self):
        assert self._quotation().get_next_version() == "REV.A"

    def test_uses_last_version(self):
        assert self._quotation("REV.A", "REV.B", "REV.C").get_next_version() == "REV.D"

    def test_positions_follow_append_order(self):
        q = self._quotation("REV.A", "REV.B")
        assert [v.position for v in q.versions] == [0, 1]
        assert q.latest_version.version == "REV.B"
