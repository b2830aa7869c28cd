"""
Read-through cache for API reads.

Keys are tuples that start with a collection name and the user id, optionally
followed by an entity id: ("accounts", user_id) for a list,
("accounts", user_id, account_id) for one entity. Every mutation drops the
collections listed for it in INVALIDATIONS.
"""
import threading
from typing import Any, Callable, Dict, Hashable, Iterable, Optional, Tuple

from src.logging_config import get_logger

logger = get_logger(__name__)


ACCOUNTS = "accounts"
TRANSACTIONS = "transactions"
CREDIT_CARDS = "credit_cards"
BILLS = "bills"
CATEGORIES = "categories"
SALARIES = "salaries"
INVESTMENTS = "investments"
SETTINGS = "user_settings"
REPORTS = "reports"

_LEDGER = (TRANSACTIONS, ACCOUNTS, CREDIT_CARDS, BILLS, REPORTS)

INVALIDATIONS: Dict[str, Tuple[str, ...]] = {
    "create_account": (ACCOUNTS, TRANSACTIONS, REPORTS),
    "update_account": (ACCOUNTS,),
    "delete_account": (ACCOUNTS, TRANSACTIONS, BILLS, REPORTS),
    "create_transaction": _LEDGER,
    "update_transaction": _LEDGER,
    "delete_transaction": _LEDGER,
    "create_credit_card": (CREDIT_CARDS, REPORTS),
    "update_credit_card": (CREDIT_CARDS,),
    "delete_credit_card": (CREDIT_CARDS, TRANSACTIONS, BILLS, REPORTS),
    "create_bill": (BILLS,),
    "update_bill": (BILLS,),
    "delete_bill": (BILLS, TRANSACTIONS, ACCOUNTS, CREDIT_CARDS, REPORTS),
    "pay_bill": _LEDGER,
    "revert_bill_payment": _LEDGER,
    "pay_credit_card_invoice": _LEDGER,
    "cleanup_duplicate_bills": (BILLS, CREDIT_CARDS),
    "create_category": (CATEGORIES,),
    "update_category": (CATEGORIES, REPORTS),
    "delete_category": (CATEGORIES, TRANSACTIONS, REPORTS),
    "create_salary": (SALARIES,),
    "update_salary": (SALARIES,),
    "delete_salary": (SALARIES,),
    "create_investment": (INVESTMENTS, REPORTS),
    "update_investment": (INVESTMENTS, REPORTS),
    "delete_investment": (INVESTMENTS, REPORTS),
    "update_settings": (SETTINGS,),
}


class QueryCache:
    def __init__(self):
        self._entries: Dict[Tuple[Hashable, ...], Any] = {}
        self._lock = threading.RLock()
        # Bumped by invalidate; a load only stores if its generation is unchanged
        self._epoch = 0
        self._collection_generations: Dict[str, int] = {}
        self._user_generations: Dict[Tuple[str, Hashable], int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Tuple[Hashable, ...]) -> bool:
        with self._lock:
            return key in self._entries

    def _generation(self, key: Tuple[Hashable, ...]) -> Tuple[int, int, int]:
        collection = key[0]
        user_id = key[1] if len(key) > 1 else None
        return (
            self._epoch,
            self._collection_generations.get(collection, 0),
            self._user_generations.get((collection, user_id), 0),
        )

    def get(self, key: Tuple[Hashable, ...], default: Any = None) -> Any:
        with self._lock:
            return self._entries.get(key, default)

    def set(self, key: Tuple[Hashable, ...], value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def get_or_load(self, key: Tuple[Hashable, ...], loader: Callable[[], Any],
                    should_cache: Optional[Callable[[Any], bool]] = None) -> Any:
        """
        Return the cached value for key, calling loader on a miss.

        The loader runs outside the lock. Its result is stored only when no
        invalidation touched the key's collection meanwhile and should_cache,
        if given, accepts the value; otherwise it is returned uncached.
        """
        with self._lock:
            if key in self._entries:
                return self._entries[key]
            generation = self._generation(key)

        value = loader()

        if should_cache is not None and not should_cache(value):
            return value

        with self._lock:
            if self._generation(key) == generation:
                self._entries[key] = value
            else:
                logger.debug(f"Discarded load of {key[:2]} invalidated while loading")
        return value

    def invalidate(self, collections: Iterable[str], user_id: Optional[str] = None) -> int:
        """Drop every key in the given collections, limited to one user when user_id is given"""
        targets = set(collections)
        with self._lock:
            for collection in targets:
                if user_id is None:
                    self._collection_generations[collection] = self._collection_generations.get(collection, 0) + 1
                else:
                    slot = (collection, user_id)
                    self._user_generations[slot] = self._user_generations.get(slot, 0) + 1

            stale = [
                key for key in self._entries
                if key[0] in targets and (user_id is None or (len(key) > 1 and key[1] == user_id))
            ]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def invalidate_for(self, mutation: str, user_id: Optional[str] = None) -> int:
        """Apply the invalidation list registered for a mutation"""
        try:
            collections = INVALIDATIONS[mutation]
        except KeyError:
            raise ValueError(f"No invalidation list registered for mutation '{mutation}'")

        dropped = self.invalidate(collections, user_id)
        logger.debug(f"{mutation} invalidated {dropped} cache entries")
        return dropped

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._entries.clear()
