"""Prometheus Pushgateway client.

Pushes the rendered registry snapshot to a push gateway:
- push: replace every series of a job (HTTP PUT)
- push_add: replace only series with the same names (HTTP POST)
- delete: remove every series of a job (HTTP DELETE)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Mapping
from urllib.parse import quote

import requests

from redmetrics.config import DEFAULT_PUSH_GATEWAY_URL
from redmetrics.core import PushGatewayError
from redmetrics.exposition import CONTENT_TYPE_LATEST, generate_latest

if TYPE_CHECKING:
    from redmetrics.registry import CollectorRegistry

logger = logging.getLogger(__name__)


class PushGateway:
    """Client for a Prometheus Pushgateway.

    The address is the URL that job names are appended to, usually
    ``http://<host>:9091/metrics/job``.

    Example:
        >>> gateway = PushGateway("http://pushgateway:9091/metrics/job")
        >>> gateway.push(registry, "nightly_import", {"instance": "worker-1"})
        >>> gateway.delete("nightly_import", {"instance": "worker-1"})
    """

    # Expected status code per HTTP verb
    SUCCESS_STATUS = {
        "PUT": 200,
        "POST": 200,
        "DELETE": 202,
    }

    def __init__(
        self,
        address: str = DEFAULT_PUSH_GATEWAY_URL,
        *,
        connect_timeout: float = 10.0,
        read_timeout: float = 20.0,
    ) -> None:
        """Initialize push gateway client.

        Args:
            address: Base URL the job name is appended to.
            connect_timeout: Seconds to wait for the connection.
            read_timeout: Seconds to wait for each read of the response.
                This bounds gaps between received bytes, not the whole
                request.
        """
        self._address = address.rstrip("/")
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout

    @property
    def address(self) -> str:
        return self._address

    def url(self, job: str, grouping_key: Mapping[str, object] | None = None) -> str:
        """Build the URL addressing one job and grouping key."""
        parts = [self._address, quote(job, safe="")]
        for label, value in (grouping_key or {}).items():
            parts.append(quote(str(label), safe=""))
            parts.append(quote(str(value), safe=""))
        return "/".join(parts)

    def push(
        self,
        registry: "CollectorRegistry",
        job: str,
        grouping_key: Mapping[str, object] | None = None,
    ) -> None:
        """Push all metrics, replacing every series of the same job."""
        self._request("PUT", job, grouping_key, generate_latest(registry))

    def push_add(
        self,
        registry: "CollectorRegistry",
        job: str,
        grouping_key: Mapping[str, object] | None = None,
    ) -> None:
        """Push all metrics, replacing only series with the same names."""
        self._request("POST", job, grouping_key, generate_latest(registry))

    def delete(
        self,
        job: str,
        grouping_key: Mapping[str, object] | None = None,
    ) -> None:
        """Delete every series of a job from the gateway."""
        self._request("DELETE", job, grouping_key)

    def _request(
        self,
        method: str,
        job: str,
        grouping_key: Mapping[str, object] | None,
        body: str | None = None,
    ) -> None:
        url = self.url(job, grouping_key)
        headers = {}
        data = None
        if body is not None:
            headers["Content-Type"] = CONTENT_TYPE_LATEST
            data = body.encode("utf-8")

        try:
            response = requests.request(
                method,
                url,
                data=data,
                headers=headers,
                timeout=(self._connect_timeout, self._read_timeout),
            )
        except requests.RequestException as e:
            raise PushGatewayError(method, url, None, str(e)) from e

        if response.status_code != self.SUCCESS_STATUS[method]:
            raise PushGatewayError(method, url, response.status_code)

        logger.info("%s %s -> %d", method, url, response.status_code)
