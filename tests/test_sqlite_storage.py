from __future__ import annotations

from adapters.sqlite_storage import SQLiteStorage


def _storage(tmp_path) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "nested" / "storewatch.db"))
    storage.init_db()
    return storage


def test_put_get_overwrite_delete(tmp_path) -> None:
    storage = _storage(tmp_path)
    assert storage.get("products") is None

    storage.put("products", "{}")
    storage.put("products", '{"1": {}}')
    assert storage.get("products") == '{"1": {}}'

    storage.delete("products")
    assert storage.get("products") is None


def test_list_by_prefix_is_literal(tmp_path) -> None:
    storage = _storage(tmp_path)
    for key in ["tg:2", "tg:1", "sub:abc", "tg_x", "status"]:
        storage.put(key, "v")

    assert list(storage.list_by_prefix("tg:")) == ["tg:1", "tg:2"]
    assert list(storage.list_by_prefix("sub:")) == ["sub:abc"]
    assert list(storage.list_by_prefix("lease")) == []


def test_unicode_values_survive(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.put("tg:1", '{"keywords": ["谷歌"]}')

    assert storage.get("tg:1") == '{"keywords": ["谷歌"]}'
