"""
Tests for SequenceService.

Covers:
- Formatting and per-(branch, kind, year) counters
- Counter rows created on first use
- Unknown branch
- The locked-counter implementation (no MAX()+1)
"""

import inspect
import re
from pathlib import Path
from uuid import uuid4

import pytest

from pawn_kernel.domain.policy import NumberingPolicy
from pawn_kernel.exceptions import BranchNotFoundError
from pawn_kernel.models.sequence import DocumentCounter
from pawn_kernel.services.sequence_service import DocumentKind, SequenceService, format_number


class TestFormatNumber:

    def test_zero_padded(self):
        assert format_number("PLG", "KL01", 2024, 7) == "PLG-KL01-2024-0007"

    def test_wider_values_are_not_truncated(self):
        assert format_number("PLG", "KL01", 2024, 12345) == "PLG-KL01-2024-12345"

    def test_custom_padding(self):
        assert format_number("RCP", "KL01", 2024, 7, padding=6) == "RCP-KL01-2024-000007"


class TestAllocation:

    def test_first_numbers(self, session, branch):
        seq = SequenceService(session)

        assert seq.next(branch.id, DocumentKind.PLEDGE, 2024) == "PLG-KL01-2024-0001"
        assert seq.next(branch.id, DocumentKind.PLEDGE, 2024) == "PLG-KL01-2024-0002"
        assert seq.next(branch.id, "receipt", 2024) == "RCP-KL01-2024-0001"

    def test_year_restarts_counter(self, session, branch):
        seq = SequenceService(session)
        seq.next(branch.id, DocumentKind.RENEWAL, 2024)
        seq.next(branch.id, DocumentKind.RENEWAL, 2024)

        assert seq.next(branch.id, DocumentKind.RENEWAL, 2025) == "RNW-KL01-2025-0001"

    def test_branches_are_independent(self, session, branch, other_branch):
        seq = SequenceService(session)
        seq.next(branch.id, DocumentKind.REDEMPTION, 2024)

        assert seq.next(other_branch.id, DocumentKind.REDEMPTION, 2024) == "RDM-PG02-2024-0001"

    def test_custom_prefixes(self, session, branch):
        numbering = NumberingPolicy(
            prefixes={"pledge": "GD", "receipt": "R", "renewal": "RN", "redemption": "TB"},
            padding=6,
        )
        seq = SequenceService(session, numbering)

        assert seq.next(branch.id, DocumentKind.PLEDGE, 2024) == "GD-KL01-2024-000001"

    def test_peek(self, session, branch):
        seq = SequenceService(session)
        assert seq.peek(branch.id, DocumentKind.PLEDGE, 2024) is None

        seq.next_value(branch.id, DocumentKind.PLEDGE, 2024)
        seq.next_value(branch.id, DocumentKind.PLEDGE, 2024)

        assert seq.peek(branch.id, DocumentKind.PLEDGE, 2024) == 2

    def test_values_strictly_increase(self, session, branch):
        seq = SequenceService(session)
        values = [seq.next_value(branch.id, DocumentKind.PLEDGE, 2024) for _ in range(25)]

        assert values == list(range(1, 26))

    def test_one_counter_row_per_key(self, session, branch):
        seq = SequenceService(session)
        for _ in range(3):
            seq.next_value(branch.id, DocumentKind.PLEDGE, 2024)

        rows = session.query(DocumentCounter).filter_by(branch_id=branch.id).all()
        assert len(rows) == 1
        assert rows[0].current_value == 3

    def test_unknown_branch(self, session):
        with pytest.raises(BranchNotFoundError):
            SequenceService(session).next(uuid4(), DocumentKind.PLEDGE, 2024)

    def test_unknown_kind(self, session, branch):
        with pytest.raises(ValueError):
            SequenceService(session).next(branch.id, "invoice", 2024)

    def test_rollback_returns_value(self, session, branch):
        seq = SequenceService(session)
        seq.next_value(branch.id, DocumentKind.PLEDGE, 2024)

        savepoint = session.begin_nested()
        seq.next_value(branch.id, DocumentKind.PLEDGE, 2024)
        savepoint.rollback()

        assert seq.next_value(branch.id, DocumentKind.PLEDGE, 2024) == 2

    def test_allocation_logged(self, session, branch, captured_logs):
        SequenceService(session).next_value(branch.id, DocumentKind.PLEDGE, 2024)

        allocated = [r for r in captured_logs() if r["message"] == "sequence_allocated"]
        assert allocated[-1]["value"] == 1
        assert allocated[-1]["sequence_key"] == f"{branch.id}/pledge/2024"


class TestImplementation:
    """Allocation must go through a locked counter row."""

    def _next_value_source(self) -> str:
        source = Path(inspect.getfile(SequenceService)).read_text()
        match = re.search(
            r"def next_value\s*\(.*?(?=\n    def \w|\nclass \w|\Z)",
            source,
            re.DOTALL,
        )
        assert match, "SequenceService.next_value not found in source"
        return match.group(0)

    def test_no_max_plus_one(self):
        body = self._next_value_source()
        assert "max(" not in body.lower()

    def test_counter_read_with_for_update(self):
        source = Path(inspect.getfile(SequenceService)).read_text()
        assert "with_for_update()" in source
