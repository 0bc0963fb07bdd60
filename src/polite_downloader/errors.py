"""Errors raised by the downloader."""
from __future__ import annotations

from http import HTTPStatus
from typing import List, Sequence

import requests


class DownloaderError(RuntimeError):
    """Base class for all download failures."""


class TransportError(DownloaderError):
    """Raised when the HTTP client fails to deliver a response or its body."""

    def __init__(self, error: requests.RequestException) -> None:
        super().__init__(error)
        self.error = error

    def __str__(self) -> str:
        return str(self.error)


class StatusNotOk(DownloaderError):
    """Raised when the response status is anything other than 200."""

    def __init__(self, status: int) -> None:
        super().__init__(status)
        self.status = int(status)

    def __str__(self) -> str:
        try:
            return f"{self.status} {HTTPStatus(self.status).phrase}"
        except ValueError:
            return str(self.status)


class HashMismatch(DownloaderError):
    """Raised when the digest of the body differs from the expected one.

    Both ``got`` and ``expected`` are lowercase hexadecimal strings.
    """

    def __init__(self, got: str, expected: str) -> None:
        super().__init__(got, expected)
        self.got = got
        self.expected = expected

    def __str__(self) -> str:
        return f"hash mismatch\nGot     :{self.got}\nExpected:{self.expected}"


class DownloadFailed(DownloaderError):
    """Raised by ``send`` once every attempt has failed.

    ``errors`` holds one error per attempt, initial attempt first.
    """

    def __init__(self, errors: Sequence[DownloaderError]) -> None:
        self.errors: List[DownloaderError] = list(errors)
        super().__init__(self.errors)

    def __str__(self) -> str:
        lines = ["download failed:"]
        for index, error in enumerate(self.errors):
            lines.append(f"[{index}]: {error}")
        return "\n".join(lines)
