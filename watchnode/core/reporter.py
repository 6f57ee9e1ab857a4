"""HTTP reporter: delivers one OutgoingReport to the collector."""

from __future__ import annotations

from types import TracebackType

import httpx

from watchnode.core.errors import BadStatusError, TransportError
from watchnode.core.logging_setup import get_logger
from watchnode.core.protocol import CONTENT_TYPE, OutgoingReport, encode_report

logger = get_logger(__name__)


class Reporter:
    """POSTs reports to the collector over a pooled httpx client.

    The client is shared by every tick, so connections are reused across
    reports. ``httpx.Client`` is safe to use from several threads.
    """

    def __init__(
        self,
        collector_url: str,
        timeout_s: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize reporter.

        Args:
            collector_url: URL the reports are POSTed to.
            timeout_s: Per-request timeout; a timeout counts as a transport error.
            client: Optional preconfigured client (tests pass one with a mock transport).
        """
        self.collector_url = collector_url
        self.timeout_s = timeout_s
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout_s)

    def send(self, report: OutgoingReport) -> httpx.Response:
        """Send a report and classify the outcome.

        Args:
            report: Report to deliver.

        Returns:
            The collector's 2xx response.

        Raises:
            TransportError: If the request could not be completed, or the
                reporter was already closed.
            BadStatusError: If the collector answered with a non-2xx status.
        """
        body = encode_report(report)
        return self.send_encoded(body)

    def send_encoded(self, body: bytes) -> httpx.Response:
        """Send an already encoded report body (see ``send``)."""
        headers = {
            "Content-Type": CONTENT_TYPE,
            "Content-Length": str(len(body)),
        }
        try:
            response = self.client.post(
                self.collector_url,
                content=body,
                headers=headers,
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as e:
            raise TransportError(e) from e
        except RuntimeError as e:
            if not self.client.is_closed:
                raise
            raise TransportError(e) from e

        if not response.is_success:
            raise BadStatusError(response.status_code)

        logger.debug(f"Report delivered ({len(body)} bytes, status {response.status_code})")
        return response

    def close(self) -> None:
        """Close the underlying client if this reporter created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> Reporter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
