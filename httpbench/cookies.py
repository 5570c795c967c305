from __future__ import annotations

import json
import logging
import threading
from http.cookiejar import Cookie
from pathlib import Path
from typing import Any

import httpx

LOGGER = logging.getLogger("httpbench.cookies")


def _cookie_to_dict(cookie: Cookie) -> dict[str, Any]:
    return {
        "name": cookie.name,
        "value": cookie.value,
        "domain": cookie.domain,
        "path": cookie.path,
        "expires": cookie.expires,
        "secure": cookie.secure,
        "http_only": cookie.has_nonstandard_attr("HttpOnly"),
    }


def _cookie_from_dict(data: dict[str, Any]) -> Cookie:
    domain = str(data.get("domain") or "")
    path = str(data.get("path") or "/")
    rest = {"HttpOnly": ""} if data.get("http_only") else {}
    return Cookie(
        version=0,
        name=str(data["name"]),
        value=data.get("value"),
        port=None,
        port_specified=False,
        domain=domain,
        domain_specified=bool(domain),
        domain_initial_dot=domain.startswith("."),
        path=path,
        path_specified=True,
        secure=bool(data.get("secure", False)),
        expires=data.get("expires"),
        discard=data.get("expires") is None,
        comment=None,
        comment_url=None,
        rest=rest,
    )


class CookieStore:
    """Cookies shared by the executors of a run, optionally persisted to a JSON file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._lock = threading.Lock()
        self._cookies = httpx.Cookies()
        self._loaded = False

    @property
    def path(self) -> Path | None:
        return self._path

    def load(self) -> httpx.Cookies:
        """Return a copy of the stored cookies, reading the file on first use."""
        with self._lock:
            if not self._loaded:
                self._loaded = True
                if self._path is not None and self._path.exists():
                    payload = json.loads(self._path.read_text(encoding="utf-8"))
                    for item in payload.get("cookies", []):
                        self._cookies.jar.set_cookie(_cookie_from_dict(item))
                    LOGGER.debug("Loaded %d cookies from %s", len(self._cookies.jar), self._path)
            return httpx.Cookies(self._cookies)

    def save(self, cookies: httpx.Cookies) -> None:
        """Merge ``cookies`` into the store and rewrite the backing file."""
        with self._lock:
            for cookie in cookies.jar:
                self._cookies.jar.set_cookie(cookie)
            if self._path is None:
                return
            payload = {"cookies": [_cookie_to_dict(cookie) for cookie in self._cookies.jar]}
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


__all__ = ["CookieStore"]
