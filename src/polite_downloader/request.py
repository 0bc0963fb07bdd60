"""Per-URL request builder and the retry loop."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Tuple, Union

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from polite_downloader.digest import Digest, as_digest
from polite_downloader.errors import (
    DownloaderError,
    DownloadFailed,
    HashMismatch,
    StatusNotOk,
    TransportError,
)
from polite_downloader.log import get_logger

if TYPE_CHECKING:
    from polite_downloader.downloader import Downloader


class RequestBuilder:
    """Configures and sends a single download.

    Obtained from ``Downloader.get``; ``send`` consumes it.
    """

    def __init__(self, downloader: "Downloader", request: requests.Request) -> None:
        self._downloader = downloader
        self._request = request
        self._hash: Optional[Tuple[str, Digest]] = None
        self._sent = False

    @property
    def url(self) -> str:
        return self._request.url or ""

    def hash(self, expected: str, digest: Union[str, Digest, Any]) -> "RequestBuilder":
        """Set the expected body hash and the digest used to compute it.

        Args:
            expected: Expected hash in hexadecimal, uppercase or lowercase.
            digest: Digest capability, ``hashlib`` object or algorithm name.

        Returns:
            This builder.

        Example::

            body = (
                downloader.get("https://example.com/")
                .hash(
                    "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855",
                    hashlib.sha256(),
                )
                .send()
            )
        """
        self._hash = (expected.lower(), as_digest(digest))
        return self

    def send(self) -> bytes:
        """Send the request to the target URL, with retries.

        Sleeps first if the downloader's interval has not yet elapsed since
        the previous download started. The number of retries and the delays
        between them come from ``DownloaderBuilder.retry_delays``.

        Returns:
            The full response body.

        Raises:
            DownloadFailed: Every attempt failed; holds one error per attempt.
        """
        if self._sent:
            raise RuntimeError("RequestBuilder.send() may only be called once.")
        self._sent = True

        downloader = self._downloader
        with downloader._exclusive():
            downloader.sleep_until_ready()
            logger = get_logger()
            logger.info("Downloading %s", self.url)

            errors: List[DownloaderError] = []
            retrying = Retrying(
                retry=retry_if_exception_type(DownloaderError),
                wait=self._retry_wait,
                stop=stop_after_attempt(len(downloader.retry_delays) + 1),
                sleep=downloader.sleep,
                before_sleep=self._log_retry,
                reraise=True,
            )
            try:
                for attempt in retrying:
                    with attempt:
                        downloader.prev_download_start = downloader.clock()
                        try:
                            return self._send_once()
                        except DownloaderError as exc:
                            errors.append(exc)
                            raise
            except DownloaderError:
                failure = DownloadFailed(errors)
                logger.error("Download of %s failed after %d attempt(s)", self.url, len(errors))
                raise failure from None
        raise RuntimeError("Download retry loop exited unexpectedly.")

    def _retry_wait(self, retry_state: RetryCallState) -> float:
        # tenacity also asks for a wait after the final attempt.
        index = retry_state.attempt_number - 1
        if index >= len(self._downloader.retry_delays):
            return 0.0
        min_delay, max_delay = self._downloader.retry_delays[index]
        return self._downloader.sampler(min_delay, max_delay)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        sleep = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = retry_state.outcome.exception() if retry_state.outcome else None
        get_logger().warning(
            "Attempt %d for %s failed (%s); retrying in %.3fs",
            retry_state.attempt_number,
            self.url,
            error,
            sleep,
        )

    def _send_once(self) -> bytes:
        session = self._downloader.session

        try:
            request = session.prepare_request(self._request)
            settings = session.merge_environment_settings(request.url, {}, True, None, None)
            response = session.send(request, timeout=self._downloader.timeout, **settings)
        except requests.RequestException as exc:
            raise TransportError(exc) from exc

        with response:
            if response.status_code != requests.codes.ok:
                raise StatusNotOk(response.status_code)
            try:
                body = response.content
            except requests.RequestException as exc:
                raise TransportError(exc) from exc

        if self._hash is not None:
            expected, digest = self._hash
            digest.reset()
            digest.update(body)
            buffer = bytearray(digest.output_size())
            digest.finalize_into(buffer)
            got = buffer.hex()
            if got != expected:
                raise HashMismatch(got=got, expected=expected)

        return body
