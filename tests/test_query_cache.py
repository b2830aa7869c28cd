"""Tests for the read-through query cache and its invalidation map."""

import pytest

from src.services.query_cache import (
    QueryCache,
    INVALIDATIONS,
    ACCOUNTS,
    BILLS,
    CATEGORIES,
    CREDIT_CARDS,
    INVESTMENTS,
    REPORTS,
    SALARIES,
    SETTINGS,
    TRANSACTIONS,
)


class TestQueryCache:

    def test_loader_runs_once_per_key(self):
        cache = QueryCache()
        calls = []

        def loader():
            calls.append(1)
            return ["account"]

        assert cache.get_or_load((ACCOUNTS, "u1", "list"), loader) == ["account"]
        assert cache.get_or_load((ACCOUNTS, "u1", "list"), loader) == ["account"]
        assert len(calls) == 1

    def test_none_is_cached(self):
        cache = QueryCache()
        calls = []

        def loader():
            calls.append(1)
            return None

        cache.get_or_load((SETTINGS, "u1"), loader)
        cache.get_or_load((SETTINGS, "u1"), loader)
        assert len(calls) == 1

    def test_invalidation_during_load_is_not_stored(self):
        """A mutation that lands while a loader runs must not leave the pre-mutation value cached"""
        cache = QueryCache()
        key = (ACCOUNTS, "u1", "list")

        def loader():
            cache.invalidate_for("pay_bill", "u1")
            return "stale-1000"

        assert cache.get_or_load(key, loader) == "stale-1000"
        assert key not in cache

        assert cache.get_or_load(key, lambda: "fresh-700") == "fresh-700"
        assert cache.get(key) == "fresh-700"

    def test_clear_during_load_is_not_stored(self):
        cache = QueryCache()
        key = (BILLS, "u1", "list")

        def loader():
            cache.clear()
            return []

        cache.get_or_load(key, loader)
        assert key not in cache

    def test_other_users_invalidation_does_not_block_store(self):
        cache = QueryCache()
        key = (ACCOUNTS, "u1", "list")

        def loader():
            cache.invalidate_for("pay_bill", "u2")
            return []

        cache.get_or_load(key, loader)
        assert key in cache

    def test_rejected_value_is_returned_but_not_stored(self):
        cache = QueryCache()
        key = (CREDIT_CARDS, "u1", 1)

        value = cache.get_or_load(key, lambda: {"used_amount": "0.00"}, should_cache=lambda v: False)

        assert value == {"used_amount": "0.00"}
        assert key not in cache

    def test_pay_bill_drops_ledger_collections_only(self):
        cache = QueryCache()
        for collection in (ACCOUNTS, TRANSACTIONS, BILLS, CREDIT_CARDS, REPORTS, CATEGORIES):
            cache.set((collection, "u1", "list"), [])

        cache.invalidate_for("pay_bill", "u1")

        assert (CATEGORIES, "u1", "list") in cache
        for collection in (ACCOUNTS, TRANSACTIONS, BILLS, CREDIT_CARDS, REPORTS):
            assert (collection, "u1", "list") not in cache

    def test_invalidation_is_scoped_to_user(self):
        cache = QueryCache()
        cache.set((ACCOUNTS, "u1", "list"), [])
        cache.set((ACCOUNTS, "u2", "list"), [])

        assert cache.invalidate_for("create_account", "u1") == 1

        assert (ACCOUNTS, "u2", "list") in cache

    def test_invalidate_without_user_drops_everyone(self):
        cache = QueryCache()
        cache.set((ACCOUNTS, "u1", 1), {})
        cache.set((ACCOUNTS, "u2", 2), {})

        cache.invalidate([ACCOUNTS])

        assert len(cache) == 0

    def test_unknown_mutation(self):
        with pytest.raises(ValueError):
            QueryCache().invalidate_for("rename_everything")

    def test_every_mutation_targets_known_collections(self):
        known = {ACCOUNTS, TRANSACTIONS, CREDIT_CARDS, BILLS, CATEGORIES, SALARIES, INVESTMENTS, SETTINGS, REPORTS}
        for mutation, collections in INVALIDATIONS.items():
            assert collections, mutation
            assert set(collections) <= known, mutation

    def test_settlement_mutations_refresh_balances(self):
        for mutation in ("pay_bill", "revert_bill_payment", "pay_credit_card_invoice", "delete_bill",
                         "create_transaction", "update_transaction", "delete_transaction"):
            assert ACCOUNTS in INVALIDATIONS[mutation]
            assert CREDIT_CARDS in INVALIDATIONS[mutation]
            assert TRANSACTIONS in INVALIDATIONS[mutation]
