# ABOUTME: Request executor for Elasticsearch admin calls
# ABOUTME: Token-first transport with a single mutual-TLS fallback on 401/403

"""
Administrative request executor.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

Every admin call is described by an OperationDescriptor (method, URI, body).
The executor sends it to ``https://<name>.<namespace>.svc:9200/<uri>`` and
writes the outcome (status, decoded body, error) back into the descriptor.

=============================================================================
AUTHENTICATION: A TWO-STATE PROTOCOL
=============================================================================

    TOKEN ──401/403──> CERTIFICATE ──(any outcome)──> done
      │
      └──(any other outcome)──> done

TOKEN
    Persistent connection pool, server certificate NOT verified (the
    cluster's serving certificate rotates independently of this client),
    ``x-forwarded-access-token`` header when a token is mounted.

CERTIFICATE
    Fresh client per attempt, server certificate verified against the admin
    CA, admin client certificate presented, no token header.

The states are walked from the fixed AUTH_SEQUENCE tuple, so the fallback can
happen at most once per descriptor: there is no third state to fall into.
This is NOT a retry policy. Timeouts, connection errors and 5xx responses end
the exchange immediately.

=============================================================================
WHY HTTPX?
=============================================================================

httpx gives per-client TLS contexts (one unverified pool, one verifying
client per fallback), explicit connect/read timeouts and connection-pool
limits, and respx for mocking both clients in tests.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from es_admin.errors import RequestBuildError
from es_admin.utils.decoding import decode_body

if TYPE_CHECKING:
    from es_admin.config import ElasticsearchCluster, TransportSettings
    from es_admin.utils.credentials import CredentialProvider

logger = structlog.get_logger(__name__)

TOKEN_HEADER = "x-forwarded-access-token"

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT"})

# Statuses meaning "these credentials are not accepted here".
# 401: no token could be read, so no header was sent.
# 403: the cluster does not authorize our service account.
AUTH_REJECTED = frozenset({401, 403})


# =============================================================================
# OPERATION DESCRIPTOR
# =============================================================================


@dataclass
class OperationDescriptor:
    """
    One administrative request and, after execution, its outcome.

    The executor fills in exactly one terminal state:

    - status_code + response: an HTTP response arrived (any status)
    - error: the transport failed, or the request could not be built

    ``response`` is None until a response has been received.
    """

    method: str
    uri: str
    body: str | None = None
    status_code: int = 0
    response: dict[str, Any] | None = None
    error: Exception | None = None

    @property
    def decoded(self) -> dict[str, Any]:
        """Decoded response, or an empty mapping when nothing was received."""
        return self.response or {}

    @property
    def acknowledged(self) -> bool:
        """True when Elasticsearch reported ``"acknowledged": true``."""
        return self.decoded.get("acknowledged") is True

    def raise_for_error(self) -> None:
        """Re-raise the transport or build error recorded by the executor."""
        if self.error is not None:
            raise self.error


class AuthScheme(enum.Enum):
    TOKEN = "token"
    CERTIFICATE = "certificate"


AUTH_SEQUENCE = (AuthScheme.TOKEN, AuthScheme.CERTIFICATE)


# =============================================================================
# EXECUTOR
# =============================================================================


class RequestExecutor:
    """
    Issues OperationDescriptors with the token-then-certificate protocol.

    LIFECYCLE:
    ----------
    The token-path client is created lazily and reused; call close() (or let
    ElasticsearchAdminClient's context manager do it) to release its pool.
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        transport: TransportSettings,
    ) -> None:
        self._credentials = credentials
        self._transport = transport
        self._token_client: httpx.Client | None = None

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._transport.connect_timeout,
            read=self._transport.read_timeout,
            write=self._transport.read_timeout,
            pool=self._transport.connect_timeout,
        )

    def _limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_keepalive_connections=self._transport.max_keepalive_connections,
            keepalive_expiry=self._transport.keepalive_expiry,
        )

    def _client_for(self, scheme: AuthScheme, cluster: ElasticsearchCluster) -> httpx.Client:
        if scheme is AuthScheme.TOKEN:
            if self._token_client is None:
                self._token_client = httpx.Client(
                    verify=False,
                    timeout=self._timeout(),
                    limits=self._limits(),
                    trust_env=True,
                )
            return self._token_client

        bundle = self._credentials.resolve_cert_bundle(cluster)
        return httpx.Client(
            verify=bundle.ssl_context(),
            timeout=self._timeout(),
            limits=self._limits(),
            trust_env=True,
        )

    def close(self) -> None:
        if self._token_client is not None:
            self._token_client.close()
            self._token_client = None

    @staticmethod
    def build_url(cluster: ElasticsearchCluster, uri: str) -> httpx.URL:
        """
        Build the full request URL.

        Raises:
            httpx.InvalidURL: when the cluster identity or URI cannot form a URL.
        """
        return httpx.URL(f"{cluster.base_url}/{uri}")

    def _headers(self, scheme: AuthScheme, descriptor: OperationDescriptor) -> dict[str, str]:
        headers = {}
        if descriptor.body and descriptor.method in ("POST", "PUT"):
            headers["Content-Type"] = "application/json"
        if scheme is AuthScheme.TOKEN:
            token, ok = self._credentials.resolve_token()
            if ok:
                headers[TOKEN_HEADER] = token
        return headers

    def _send(
        self,
        scheme: AuthScheme,
        cluster: ElasticsearchCluster,
        url: httpx.URL,
        descriptor: OperationDescriptor,
    ) -> httpx.Response:
        content = descriptor.body if descriptor.body and descriptor.method != "GET" else None
        http_client = self._client_for(scheme, cluster)
        try:
            return http_client.request(
                descriptor.method,
                url,
                content=content,
                headers=self._headers(scheme, descriptor),
            )
        finally:
            if http_client is not self._token_client:
                http_client.close()

    def execute(
        self,
        cluster: ElasticsearchCluster,
        descriptor: OperationDescriptor,
    ) -> OperationDescriptor:
        """
        Execute a descriptor and record its outcome in place.

        Never raises for request failures: build errors and transport errors
        are stored in ``descriptor.error``.

        Returns:
            The same descriptor, for chaining.
        """
        log = logger.bind(
            cluster=cluster.name,
            namespace=cluster.namespace,
            method=descriptor.method,
            uri=descriptor.uri,
        )

        try:
            url = self.build_url(cluster, descriptor.uri)
        except httpx.InvalidURL as exc:
            log.warning("Unable to build request URL", error=str(exc))
            descriptor.error = RequestBuildError("Unable to build request URL", str(exc))
            return descriptor

        if descriptor.method not in SUPPORTED_METHODS:
            log.warning("Unsupported request method")
            descriptor.error = RequestBuildError(f"Unsupported method {descriptor.method}")
            return descriptor

        for scheme in AUTH_SEQUENCE:
            log.debug("Making Elasticsearch admin request", auth=scheme.value)
            try:
                response = self._send(scheme, cluster, url, descriptor)
            except httpx.HTTPError as exc:
                log.warning("Elasticsearch request failed", auth=scheme.value, error=str(exc))
                descriptor.error = exc
                return descriptor

            if response.status_code in AUTH_REJECTED and scheme is not AUTH_SEQUENCE[-1]:
                log.info(
                    "Credentials rejected, falling back",
                    auth=scheme.value,
                    status=response.status_code,
                )
                continue

            descriptor.status_code = response.status_code
            descriptor.response = decode_body(response.text)
            if response.status_code >= 400:
                log.warning(
                    "Elasticsearch admin error",
                    auth=scheme.value,
                    status=response.status_code,
                    body=response.text[:200],
                )
            break

        return descriptor
