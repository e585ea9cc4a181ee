"""
Unit Tests - Cross-Store Matcher
"""
import pytest

from admin_panel.database.errors import StoreUnavailableError
from admin_panel.reconciliation.matcher import TransactionMatcher, match_transactions
from tests.factories import FakePaymentsStore, make_transaction


class TestMatchTransactions:
    """Tests for the pure matching function"""

    def test_substring_match_with_prefix_and_suffix(self):
        transactions = [make_transaction("t1", "PFX-XYZ-SFX")]
        assert match_transactions({"XYZ"}, transactions) == transactions

    def test_match_is_case_sensitive(self):
        transactions = [make_transaction("t1", "pfx-xyz-sfx")]
        assert match_transactions({"XYZ"}, transactions) == []

    def test_empty_candidates_match_nothing(self):
        transactions = [make_transaction("t1", "ANY")]
        assert match_transactions(set(), transactions) == []
        assert match_transactions({""}, transactions) == []

    def test_missing_external_id_never_matches(self):
        assert match_transactions({"X"}, [make_transaction("t1", None)]) == []

    def test_transaction_matched_by_several_candidates_appears_once(self):
        transaction = make_transaction("t1", "TX1-PAY1")
        matched = match_transactions({"TX1", "PAY1"}, [transaction, transaction])
        assert matched == [transaction]

    def test_newest_first_with_stable_ties(self):
        old = make_transaction("old", "A-1", days=0)
        new = make_transaction("new", "A-2", days=5)
        tie_a = make_transaction("tie-a", "A-3", days=2)
        tie_b = make_transaction("tie-b", "A-4", days=2)

        matched = match_transactions({"A"}, [old, tie_a, new, tie_b])

        assert [t.id for t in matched] == ["new", "tie-a", "tie-b", "old"]

    def test_unanchored_match_over_matches_short_candidates(self):
        """Short numeric candidates match inside unrelated ids"""
        transactions = [make_transaction("t1", "PAY-9123")]
        assert match_transactions({"12"}, transactions) == transactions


class TestTransactionMatcher:
    """Tests for the store-backed matcher"""

    async def test_no_candidates_issues_no_query(self):
        store = FakePaymentsStore([make_transaction("t1", "XYZ")])

        result = await TransactionMatcher(store).match(set())

        assert result.transactions == ()
        assert not result.degraded
        assert store.queries == []

    async def test_single_query_with_pooled_candidates(self):
        store = FakePaymentsStore([
            make_transaction("t1", "PFX-XYZ-SFX", days=1),
            make_transaction("t2", "TX-77", days=2),
            make_transaction("t3", "UNRELATED"),
        ])

        result = await TransactionMatcher(store).match({"XYZ", "TX-77"})

        assert [t.id for t in result.transactions] == ["t2", "t1"]
        assert store.queries == [frozenset({"XYZ", "TX-77"})]

    async def test_store_rows_are_refiltered_case_sensitively(self):
        """A case-insensitive store LIKE does not widen the result"""
        store = FakePaymentsStore([make_transaction("t1", "pfx-xyz")])

        result = await TransactionMatcher(store).match({"XYZ"})

        assert result.transactions == ()

    async def test_store_failure_degrades_to_empty_result(self):
        store = FakePaymentsStore([make_transaction("t1", "XYZ")])
        store.error = StoreUnavailableError("payments", "connection refused")

        result = await TransactionMatcher(store).match({"XYZ"}, user_id="user-1")

        assert result.transactions == ()
        assert result.degraded
        assert result.error.startswith("transactions_unavailable")

    async def test_unexpected_errors_propagate(self):
        store = FakePaymentsStore()
        store.error = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await TransactionMatcher(store).match({"XYZ"})
