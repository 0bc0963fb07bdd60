"""Rate-limited downloader and its builder."""
from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence, Tuple

import requests

from polite_downloader.errors import TransportError
from polite_downloader.log import get_logger
from polite_downloader.request import RequestBuilder
from polite_downloader.utils.timing import Sampler, random_duration, validate_range

SessionHook = Callable[[requests.Session], requests.Session]


class Downloader:
    """Blocking downloader with randomized spacing and retries.

    Build one with ``Downloader.builder()`` (or ``Downloader()`` for the
    defaults), then call ``get(url).send()`` for each file. Only one request
    may be in flight per downloader.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        min_interval: float = 0.0,
        max_interval: float = 0.0,
        retry_delays: Sequence[Tuple[float, float]] = (),
        timeout: Optional[float] = None,
        sampler: Sampler = random_duration,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        validate_range(min_interval, max_interval)
        for min_delay, max_delay in retry_delays:
            validate_range(min_delay, max_delay)

        self.session = session if session is not None else requests.Session()
        self.min_interval = float(min_interval)
        self.max_interval = float(max_interval)
        self.retry_delays: Tuple[Tuple[float, float], ...] = tuple(
            (float(min_delay), float(max_delay)) for min_delay, max_delay in retry_delays
        )
        self.timeout = timeout
        self.sampler = sampler
        self.clock = clock
        self.sleep = sleep
        self.prev_download_start: Optional[float] = None
        self._busy = threading.Lock()

    @staticmethod
    def builder() -> "DownloaderBuilder":
        """Same as ``DownloaderBuilder()``."""
        return DownloaderBuilder()

    @classmethod
    def new(cls) -> "Downloader":
        """Create a downloader with default configuration."""
        return DownloaderBuilder().build()

    def get(self, url: str, headers: Optional[Mapping[str, str]] = None) -> RequestBuilder:
        """Begin building a request to download ``url``.

        Args:
            url: Target URL.
            headers: Optional extra request headers.

        Returns:
            Request builder bound to this downloader.
        """
        request = requests.Request("GET", url, headers=dict(headers or {}))
        return RequestBuilder(self, request)

    def sleep_until_ready(self) -> None:
        """Sleep until ready for the next download.

        A random interval between ``min_interval`` and ``max_interval`` is
        measured from the start of the previous download. Afterwards the next
        ``send`` starts immediately.
        """
        if self.prev_download_start is None:
            return

        interval = self.sampler(self.min_interval, self.max_interval)
        elapsed = self.clock() - self.prev_download_start
        if elapsed < interval:
            get_logger().debug("Waiting %.3fs before next download", interval - elapsed)
            self.sleep(interval - elapsed)
        self.prev_download_start = None

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._busy.acquire(blocking=False):
            raise RuntimeError("Downloader is already sending a request.")
        try:
            yield
        finally:
            self._busy.release()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "Downloader":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class DownloaderBuilder:
    """Collects configuration for a ``Downloader``.

    Every setter returns the builder so calls chain::

        downloader = (
            Downloader.builder()
            .interval(1.0, 1.1)
            .retry_delays([(2.0, 2.2), (5.0, 5.5)])
            .user_agent("example/1.0")
            .build()
        )
    """

    def __init__(self) -> None:
        self._min_interval = 0.0
        self._max_interval = 0.0
        self._retry_delays: List[Tuple[float, float]] = []
        self._session_hooks: List[SessionHook] = []
        self._timeout: Optional[float] = None
        self._sampler: Sampler = random_duration
        self._clock: Callable[[], float] = time.monotonic
        self._sleep: Callable[[float], None] = time.sleep

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "DownloaderBuilder":
        """Create a builder from a configuration mapping.

        Args:
            config: Mapping as returned by ``load_config``.

        Returns:
            Configured builder.
        """
        builder = cls()

        interval = config.get("interval")
        if isinstance(interval, Mapping):
            builder.interval(float(interval.get("min", 0.0)), float(interval.get("max", 0.0)))
        elif interval is not None:
            min_interval, max_interval = interval
            builder.interval(float(min_interval), float(max_interval))

        retry_delays = config.get("retry_delays")
        if retry_delays:
            builder.retry_delays([(float(low), float(high)) for low, high in retry_delays])

        if config.get("timeout") is not None:
            builder.timeout(float(config["timeout"]))
        if config.get("user_agent"):
            builder.user_agent(str(config["user_agent"]))
        return builder

    def interval(self, min_seconds: float, max_seconds: float) -> "DownloaderBuilder":
        """Set the interval between download starts in seconds, default 0.

        A random interval between ``min_seconds`` and ``max_seconds`` is drawn
        for each download. If less time has elapsed since the previous download
        started, ``send`` sleeps for the remainder first.

        Raises:
            ValueError: If ``min_seconds > max_seconds`` or a bound is negative.
        """
        validate_range(min_seconds, max_seconds)
        self._min_interval = float(min_seconds)
        self._max_interval = float(max_seconds)
        return self

    def retry_delays(self, delays: Sequence[Tuple[float, float]]) -> "DownloaderBuilder":
        """Set retry delays in seconds, default none.

        Each item is a ``(min, max)`` pair and the number of items is the
        number of retries. A random delay in the pair's range is slept before
        the matching retry.

        Raises:
            ValueError: If any item has ``min > max`` or a negative bound.
        """
        checked: List[Tuple[float, float]] = []
        for min_delay, max_delay in delays:
            validate_range(min_delay, max_delay)
            checked.append((float(min_delay), float(max_delay)))
        self._retry_delays = checked
        return self

    def configure_http(self, hook: SessionHook) -> "DownloaderBuilder":
        """Register a hook that customizes the underlying ``requests.Session``.

        Hooks run in registration order during ``build`` and must return the
        session to use (usually the one they were given).
        """
        self._session_hooks.append(hook)
        return self

    def user_agent(self, value: str) -> "DownloaderBuilder":
        def _set_user_agent(session: requests.Session) -> requests.Session:
            session.headers["User-Agent"] = value
            return session

        return self.configure_http(_set_user_agent)

    def timeout(self, seconds: Optional[float]) -> "DownloaderBuilder":
        """Per-attempt timeout; an expired timeout counts as a failed attempt."""
        self._timeout = seconds
        return self

    def sampler(self, sampler: Sampler) -> "DownloaderBuilder":
        self._sampler = sampler
        return self

    def timing(
        self,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> "DownloaderBuilder":
        """Replace the monotonic clock and the blocking sleep."""
        if clock is not None:
            self._clock = clock
        if sleep is not None:
            self._sleep = sleep
        return self

    def build(self) -> Downloader:
        """Create the ``Downloader``.

        Raises:
            TransportError: If the HTTP session could not be configured.
        """
        session = requests.Session()
        try:
            for hook in self._session_hooks:
                session = hook(session)
        except requests.RequestException as exc:
            session.close()
            raise TransportError(exc) from exc

        return Downloader(
            session=session,
            min_interval=self._min_interval,
            max_interval=self._max_interval,
            retry_delays=self._retry_delays,
            timeout=self._timeout,
            sampler=self._sampler,
            clock=self._clock,
            sleep=self._sleep,
        )

