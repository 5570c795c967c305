from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

SUPPORTED_VERSIONS: tuple[str, ...] = ("1.1", "2")
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_REQUEST_COUNT = 100
DEFAULT_CLIENTS_COUNT = 20
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class RequestSpec:
    """Fully resolved request sent by every worker of a run."""

    uri: str
    method: str = "GET"
    version: str = "1.1"
    headers: tuple[tuple[str, str], ...] = field(default_factory=tuple)
    body: bytes | None = None
    timeout_s: float = DEFAULT_TIMEOUT_S

    def __post_init__(self) -> None:
        if self.version not in SUPPORTED_VERSIONS:
            raise ValueError(
                f"HTTP version {self.version!r} is not supported, use one of {', '.join(SUPPORTED_VERSIONS)}"
            )
        if self.timeout_s <= 0:
            raise ValueError("RequestSpec timeout_s must be > 0")
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", tuple((str(k), str(v)) for k, v in self.headers))

    @property
    def http2(self) -> bool:
        return self.version == "2"


@dataclass(frozen=True)
class RunPolicy:
    """Shape of a load run: how many clients send how many measured requests."""

    request_count: int = DEFAULT_REQUEST_COUNT
    clients_count: int = DEFAULT_CLIENTS_COUNT
    enable_redirects: bool = True
    enable_certificate_validation: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.request_count < 1:
            raise ValueError("RunPolicy request_count must be >= 1")
        if self.clients_count < 1:
            raise ValueError("RunPolicy clients_count must be >= 1")
        level = self.log_level.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level {self.log_level!r}")
        object.__setattr__(self, "log_level", level)

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)

    def to_dict(self) -> dict[str, object]:
        return {
            "request_count": self.request_count,
            "clients_count": self.clients_count,
            "enable_redirects": self.enable_redirects,
            "enable_certificate_validation": self.enable_certificate_validation,
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "RunPolicy":
        return cls(
            request_count=int(data["request_count"]),
            clients_count=int(data["clients_count"]),
            enable_redirects=bool(data["enable_redirects"]),
            enable_certificate_validation=bool(data["enable_certificate_validation"]),
            log_level=str(data["log_level"]),
        )


def parse_headers(values: Iterable[str]) -> tuple[tuple[str, str], ...]:
    """Parse ``Name:Value`` pairs, keeping their order."""
    headers: list[tuple[str, str]] = []
    for item in values:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Header {item!r} must use the Name:Value form")
        headers.append((name.strip(), value.strip()))
    return tuple(headers)


__all__ = [
    "SUPPORTED_VERSIONS",
    "DEFAULT_TIMEOUT_S",
    "DEFAULT_REQUEST_COUNT",
    "DEFAULT_CLIENTS_COUNT",
    "LOG_LEVELS",
    "RequestSpec",
    "RunPolicy",
    "parse_headers",
]
