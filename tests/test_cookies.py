import json

import httpx

from httpbench.cookies import CookieStore


def jar_values(cookies):
    return {cookie.name: cookie.value for cookie in cookies.jar}


class TestCookieStore:
    def test_memory_only_store(self):
        store = CookieStore()
        cookies = httpx.Cookies()
        cookies.set("session", "abc", domain="example.com")

        store.save(cookies)

        assert jar_values(store.load()) == {"session": "abc"}
        assert store.path is None

    def test_load_returns_copy(self):
        store = CookieStore()
        loaded = store.load()
        loaded.set("local", "1", domain="example.com")
        assert jar_values(store.load()) == {}

    def test_persisted_between_stores(self, tmp_path):
        path = tmp_path / "cookies.json"
        cookies = httpx.Cookies()
        cookies.set("session", "abc", domain="example.com", path="/api")

        CookieStore(path).save(cookies)
        payload = json.loads(path.read_text(encoding="utf-8"))
        loaded = CookieStore(path).load()

        assert payload["cookies"][0]["name"] == "session"
        assert loaded.get("session", domain="example.com", path="/api") == "abc"

    def test_missing_file_loads_empty(self, tmp_path):
        assert jar_values(CookieStore(tmp_path / "missing.json").load()) == {}

    def test_saves_merge(self, tmp_path):
        store = CookieStore(tmp_path / "cookies.json")
        first = httpx.Cookies()
        first.set("a", "1", domain="example.com")
        second = httpx.Cookies()
        second.set("b", "2", domain="example.com")

        store.save(first)
        store.save(second)

        assert jar_values(CookieStore(tmp_path / "cookies.json").load()) == {"a": "1", "b": "2"}
