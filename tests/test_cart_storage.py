import json
import threading
from decimal import Decimal

import pytest

from medstore.cart.sessions import CartSessions, new_session_id
from medstore.cart.storage import CartFileStorage, valid_session_id
from medstore.cart.store import CartStore


@pytest.fixture
def storage(tmp_path):
    s = CartFileStorage(str(tmp_path / "carts"))
    yield s
    s.close()


class TestCartFileStorage:
    def test_save_then_load(self, storage, product_factory):
        cart = CartStore()
        cart.add_to_cart(product_factory("p", price="12.50"), 3)

        storage.save("abc", cart.to_dict()).result()

        data = storage.load("abc")
        assert data["lines"][0]["quantity"] == 3
        assert data["lines"][0]["product"]["price"] == "12.50"

    def test_missing_file_loads_none(self, storage):
        assert storage.load("nobody") is None

    def test_corrupt_file_loads_none(self, storage):
        storage.directory.mkdir(parents=True)
        (storage.directory / "bad.json").write_text("{not json", encoding="utf-8")

        assert storage.load("bad") is None

    def test_rejects_path_like_session_ids(self, storage):
        assert storage.load("../etc/passwd") is None
        with pytest.raises(ValueError):
            storage._path("a/b")

    def test_write_failure_is_swallowed(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        s = CartFileStorage(str(blocker / "carts"))
        try:
            s.save("abc", {"lines": []}).result()
        finally:
            s.close()

        assert not (blocker / "carts").exists()

    def test_delete(self, storage):
        storage.save("abc", {"lines": []}).result()

        storage.delete("abc")
        storage.delete("abc").result()

        assert storage.load("abc") is None


class TestCartSessions:
    def test_one_cart_per_session(self, product_factory):
        sessions = CartSessions()

        sessions.get("s1").add_to_cart(product_factory("p"), 2)

        assert sessions.get("s1").total_items == 2
        assert sessions.get("s2").is_empty
        assert len(sessions) == 2

    def test_bad_session_id(self):
        with pytest.raises(ValueError):
            CartSessions().get("no spaces allowed")

    def test_mutations_are_persisted(self, storage, product_factory):
        sessions = CartSessions(storage)
        cart = sessions.get("s1")

        cart.add_to_cart(product_factory("p", price=700), 4)
        storage.flush()

        raw = json.loads((storage.directory / "s1.json").read_text(encoding="utf-8"))
        assert raw["lines"][0]["quantity"] == 4

    def test_restored_from_storage(self, storage, product_factory):
        CartSessions(storage).get("s1").add_to_cart(product_factory("p", price=700), 4)
        storage.flush()

        restored = CartSessions(storage).get("s1")

        assert restored.total_items == 4
        assert restored.total_price == Decimal("2800")

    def test_malformed_stored_cart_starts_empty(self, storage):
        storage.save("s1", {"lines": [{"quantity": 2}]}).result()

        assert CartSessions(storage).get("s1").is_empty

    @pytest.mark.parametrize("content", ["[1, 2]", '{"lines": ["x"]}', '{"lines": 5}', '"cart"'])
    def test_wrongly_shaped_stored_cart_starts_empty(self, storage, content):
        storage.directory.mkdir(parents=True, exist_ok=True)
        (storage.directory / "s1.json").write_text(content, encoding="utf-8")

        assert CartSessions(storage).get("s1").is_empty

    def test_least_recently_used_cart_is_evicted(self, product_factory):
        sessions = CartSessions(max_carts=2)
        sessions.get("a").add_to_cart(product_factory("p"))
        sessions.get("b")
        sessions.get("a")

        sessions.get("c")

        assert len(sessions) == 2
        assert "b" not in sessions
        assert sessions.get("a").total_items == 1

    def test_evicted_cart_comes_back_from_storage(self, storage, product_factory):
        sessions = CartSessions(storage, max_carts=1)
        sessions.get("a").add_to_cart(product_factory("p"), 3)
        sessions.get("b")
        storage.flush()

        assert "a" not in sessions
        assert sessions.get("a").total_items == 3

    def test_peek_does_not_register(self, product_factory):
        sessions = CartSessions()

        assert sessions.peek("s1").is_empty
        assert len(sessions) == 0

        sessions.get("s1").add_to_cart(product_factory("p"))
        assert sessions.peek("s1").total_items == 1

    def test_concurrent_get_returns_one_cart(self):
        sessions = CartSessions()
        start = threading.Barrier(8)
        seen = []

        def worker():
            start.wait()
            seen.append(sessions.get("shared"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({id(c) for c in seen}) == 1
        assert len(sessions) == 1

    def test_drop_after_pending_save_removes_file(self, storage, product_factory):
        sessions = CartSessions(storage)
        sessions.get("s1").add_to_cart(product_factory("p"))

        sessions.drop("s1")
        storage.flush()

        assert storage.load("s1") is None

    def test_drop(self, storage, product_factory):
        sessions = CartSessions(storage)
        sessions.get("s1").add_to_cart(product_factory("p"))
        storage.flush()

        sessions.drop("s1")
        storage.flush()

        assert "s1" not in sessions
        assert storage.load("s1") is None


def test_new_session_ids_are_valid_and_distinct():
    ids = {new_session_id() for _ in range(20)}

    assert len(ids) == 20
    assert all(valid_session_id(i) for i in ids)
