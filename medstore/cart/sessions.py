from __future__ import annotations

import logging
import secrets
import threading
from collections import OrderedDict
from typing import Optional

from medstore.cart.storage import CartFileStorage, valid_session_id
from medstore.cart.store import CartStore

logger = logging.getLogger(__name__)

MAX_CARTS = 10000


def new_session_id() -> str:
    return secrets.token_urlsafe(18)


class CartSessions:
    """
    Owns one CartStore per browsing session.

    Created once at application start and handed to whoever needs a cart,
    so there is no process-wide cart object.

    At most `max_carts` carts stay in memory; the least recently used one is
    evicted first. With storage attached an evicted cart is restored from its
    file on the next request, without storage it is gone.
    """

    def __init__(self, storage: Optional[CartFileStorage] = None, max_carts: int = MAX_CARTS) -> None:
        if max_carts < 1:
            raise ValueError("max_carts must be >= 1")
        self.storage = storage
        self.max_carts = max_carts
        self._carts: "OrderedDict[str, CartStore]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, session_id: str) -> CartStore:
        """Cart to mutate: registered on first use."""
        if not valid_session_id(session_id):
            raise ValueError(f"bad session id: {session_id!r}")

        with self._lock:
            cart = self._carts.get(session_id)
            if cart is not None:
                self._carts.move_to_end(session_id)
                return cart

            cart = self._restore(session_id, self._persist_hook(session_id))
            self._carts[session_id] = cart
            while len(self._carts) > self.max_carts:
                evicted, _ = self._carts.popitem(last=False)
                logger.debug("evicted cart %s from memory", evicted)
            return cart

    def peek(self, session_id: str) -> CartStore:
        """
        Cart to read. Unknown sessions get a throwaway cart that is not
        registered, so read-only traffic never grows the registry.
        """
        if not valid_session_id(session_id):
            raise ValueError(f"bad session id: {session_id!r}")

        with self._lock:
            cart = self._carts.get(session_id)
            if cart is not None:
                self._carts.move_to_end(session_id)
                return cart
        return self._restore(session_id, None)

    def drop(self, session_id: str) -> None:
        with self._lock:
            self._carts.pop(session_id, None)
        if self.storage:
            self.storage.delete(session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._carts

    def __len__(self) -> int:
        return len(self._carts)

    def _restore(self, session_id: str, on_change) -> CartStore:
        data = self.storage.load(session_id) if self.storage else None
        if not data:
            return CartStore(on_change=on_change)
        try:
            return CartStore.from_dict(data, on_change=on_change)
        except (KeyError, TypeError, ValueError):
            logger.warning("stored cart %s is malformed, starting empty", session_id)
            return CartStore(on_change=on_change)

    def _persist_hook(self, session_id: str):
        if self.storage is None:
            return None
        storage = self.storage

        def _save(cart: CartStore) -> None:
            storage.save(session_id, cart.to_dict())

        return _save
