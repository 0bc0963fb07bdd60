from __future__ import annotations

import io
from http import HTTPStatus
from typing import Any, List, Sequence, Union

import pytest
import requests
from requests.adapters import BaseAdapter

from polite_downloader.downloader import Downloader

Reply = Union[tuple, Exception]


class FakeAdapter(BaseAdapter):
    """Transport adapter that replays canned ``(status, body)`` replies."""

    def __init__(self, replies: Sequence[Reply]):
        super().__init__()
        self.replies: List[Reply] = list(replies)
        self.requests: List[requests.PreparedRequest] = []
        self.timeouts: List[Any] = []
        self.on_send = None

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.requests.append(request)
        self.timeouts.append(timeout)
        if self.on_send is not None:
            self.on_send(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        status, body = reply
        response = requests.Response()
        response.status_code = status
        response.reason = HTTPStatus(status).phrase
        response.raw = body if hasattr(body, "read") or hasattr(body, "stream") else io.BytesIO(body)
        response.url = request.url
        response.request = request
        return response

    def close(self) -> None:
        pass


class FakeClock:
    """Monotonic clock whose ``sleep`` only advances time."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def mount(adapter: BaseAdapter):
    def _hook(session: requests.Session) -> requests.Session:
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    return _hook


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_downloader(clock):
    """Build a downloader backed by a ``FakeAdapter`` and the fake clock."""

    def _make(replies, retry_delays=(), interval=(0.0, 0.0), **kwargs):
        adapter = FakeAdapter(replies)
        builder = (
            Downloader.builder()
            .interval(*interval)
            .retry_delays(list(retry_delays))
            .configure_http(mount(adapter))
            .timing(clock=clock, sleep=clock.sleep)
        )
        if "timeout" in kwargs:
            builder.timeout(kwargs["timeout"])
        if "sampler" in kwargs:
            builder.sampler(kwargs["sampler"])
        return builder.build(), adapter

    return _make
