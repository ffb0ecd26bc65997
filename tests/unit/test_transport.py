# ABOUTME: Unit tests for the request executor
# ABOUTME: Tests token/certificate fallback, descriptor outcomes, and request building

import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest
import respx
from conftest import BASE_URL, StaticCredentialProvider
from urllib3.exceptions import MaxRetryError

from es_admin.config import ElasticsearchCluster, TransportSettings
from es_admin.errors import RequestBuildError
from es_admin.utils.credentials import FileCredentialProvider, KubernetesSecretMaterializer
from es_admin.utils.transport import (
    AUTH_SEQUENCE,
    TOKEN_HEADER,
    AuthScheme,
    OperationDescriptor,
    RequestExecutor,
)


@pytest.fixture
def executor(
    credentials: StaticCredentialProvider,
    transport_settings: TransportSettings,
) -> Iterator[RequestExecutor]:
    ex = RequestExecutor(credentials, transport_settings)
    yield ex
    ex.close()


@pytest.mark.unit
class TestOperationDescriptor:
    """Tests for OperationDescriptor helpers."""

    def test_defaults(self):
        """Test a fresh descriptor has no outcome."""
        descriptor = OperationDescriptor("GET", "_cluster/health")

        assert descriptor.status_code == 0
        assert descriptor.response is None
        assert descriptor.error is None
        assert descriptor.decoded == {}

    def test_acknowledged(self):
        """Test acknowledged requires a literal true."""
        assert OperationDescriptor("PUT", "x", response={"acknowledged": True}).acknowledged
        assert not OperationDescriptor("PUT", "x", response={"acknowledged": "true"}).acknowledged
        assert not OperationDescriptor("PUT", "x", response={}).acknowledged

    def test_raise_for_error(self):
        """Test raise_for_error re-raises the recorded error."""
        descriptor = OperationDescriptor("GET", "x", error=httpx.ConnectError("refused"))

        with pytest.raises(httpx.ConnectError):
            descriptor.raise_for_error()

    def test_auth_sequence_has_single_fallback(self):
        """Test the protocol has exactly two states, token first."""
        assert AUTH_SEQUENCE == (AuthScheme.TOKEN, AuthScheme.CERTIFICATE)


@pytest.mark.unit
class TestRequestExecutorSuccess:
    """Tests for requests answered on the token path."""

    @respx.mock
    def test_get_decodes_json(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test a GET response is decoded into the descriptor."""
        route = respx.get(f"{BASE_URL}/_cluster/health").mock(
            return_value=httpx.Response(200, json={"status": "green"})
        )

        descriptor = executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))

        assert route.call_count == 1
        assert descriptor.status_code == 200
        assert descriptor.response == {"status": "green"}
        assert descriptor.error is None

    @respx.mock
    def test_token_header_sent(
        self,
        executor: RequestExecutor,
        cluster: ElasticsearchCluster,
        credentials: StaticCredentialProvider,
    ):
        """Test the service-account token is sent on the primary path."""
        route = respx.get(f"{BASE_URL}/_cluster/health").mock(
            return_value=httpx.Response(200, json={})
        )

        executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))

        assert route.calls.last.request.headers[TOKEN_HEADER] == "test-token"
        assert credentials.token_requests == 1
        assert credentials.bundle_requests == []

    @respx.mock
    def test_no_token_header_without_token(
        self,
        cluster: ElasticsearchCluster,
        transport_settings: TransportSettings,
    ):
        """Test no header is sent when no token can be resolved."""
        route = respx.get(f"{BASE_URL}/_cluster/health").mock(
            return_value=httpx.Response(200, json={})
        )
        executor = RequestExecutor(StaticCredentialProvider(token=""), transport_settings)

        executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))
        executor.close()

        assert TOKEN_HEADER not in route.calls.last.request.headers

    @respx.mock
    def test_put_sends_json_body(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test PUT bodies are sent with a JSON content type."""
        route = respx.put(f"{BASE_URL}/_cluster/settings").mock(
            return_value=httpx.Response(200, json={"acknowledged": True})
        )
        body = json.dumps({"transient": {"cluster.routing.allocation.enable": "none"}})

        executor.execute(cluster, OperationDescriptor("PUT", "_cluster/settings", body))

        request = route.calls.last.request
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {
            "transient": {"cluster.routing.allocation.enable": "none"}
        }

    @respx.mock
    def test_post_without_body(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test POST without a body sends no content type."""
        route = respx.post(f"{BASE_URL}/_flush/synced").mock(
            return_value=httpx.Response(200, json={"_shards": {"failed": 0}})
        )

        executor.execute(cluster, OperationDescriptor("POST", "_flush/synced"))

        assert "Content-Type" not in route.calls.last.request.headers
        assert route.calls.last.request.content == b""

    @respx.mock
    def test_non_json_body_wrapped(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test text bodies are wrapped under results."""
        respx.get(f"{BASE_URL}/_cat/nodes").mock(
            return_value=httpx.Response(200, text="node1 6.3gb 5.36\n")
        )

        descriptor = executor.execute(cluster, OperationDescriptor("GET", "_cat/nodes"))

        assert descriptor.response == {"results": "node1 6.3gb 5.36\n"}

    @respx.mock
    def test_token_client_reused(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test the token-path client is pooled across requests."""
        respx.get(f"{BASE_URL}/_cluster/health").mock(return_value=httpx.Response(200, json={}))

        executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))
        first = executor._token_client
        executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))

        assert first is not None
        assert executor._token_client is first

    def test_close_releases_client(self, executor: RequestExecutor):
        """Test close() drops the pooled client."""
        executor.close()
        assert executor._token_client is None

    @respx.mock
    def test_token_reread_every_request(
        self,
        tmp_path: Path,
        cluster: ElasticsearchCluster,
        transport_settings: TransportSettings,
    ):
        """Test a rotated token file is picked up on the next request."""
        token_file = tmp_path / "token"
        token_file.write_text("first-token\n")
        provider = FileCredentialProvider(token_file, tmp_path / "certs")
        executor = RequestExecutor(provider, transport_settings)
        route = respx.get(f"{BASE_URL}/_cluster/health").mock(
            return_value=httpx.Response(200, json={})
        )

        executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))
        token_file.write_text("second-token\n")
        executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))
        executor.close()

        assert route.calls[0].request.headers[TOKEN_HEADER] == "first-token"
        assert route.calls[1].request.headers[TOKEN_HEADER] == "second-token"


@pytest.mark.unit
class TestRequestExecutorFallback:
    """Tests for the single certificate fallback."""

    @pytest.mark.parametrize("status", [401, 403])
    @respx.mock
    def test_auth_rejection_falls_back_once(
        self,
        status: int,
        executor: RequestExecutor,
        cluster: ElasticsearchCluster,
        credentials: StaticCredentialProvider,
    ):
        """Test 401/403 on the token path triggers one certificate attempt."""
        route = respx.get(f"{BASE_URL}/_cluster/health").mock(
            side_effect=[
                httpx.Response(status, text="Forbidden"),
                httpx.Response(200, json={"status": "yellow"}),
            ]
        )

        descriptor = executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))

        assert route.call_count == 2
        assert TOKEN_HEADER in route.calls[0].request.headers
        assert TOKEN_HEADER not in route.calls[1].request.headers
        assert credentials.bundle_requests == [cluster]
        assert descriptor.status_code == 200
        assert descriptor.response == {"status": "yellow"}

    @respx.mock
    def test_fallback_outcome_is_final(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test a rejection on the certificate path is returned, not retried."""
        route = respx.get(f"{BASE_URL}/_cluster/health").mock(
            side_effect=[
                httpx.Response(403, text="Forbidden"),
                httpx.Response(401, json={"error": "unauthorized"}),
            ]
        )

        descriptor = executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))

        assert route.call_count == 2
        assert descriptor.status_code == 401
        assert descriptor.response == {"error": "unauthorized"}
        assert descriptor.error is None

    @respx.mock
    def test_fallback_resends_same_request(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test the certificate attempt repeats method, URI and body."""
        route = respx.put(f"{BASE_URL}/_cluster/settings").mock(
            side_effect=[
                httpx.Response(403),
                httpx.Response(200, json={"acknowledged": True}),
            ]
        )
        body = '{"persistent":{"discovery.zen.minimum_master_nodes":2}}'

        executor.execute(cluster, OperationDescriptor("PUT", "_cluster/settings", body))

        first, second = route.calls[0].request, route.calls[1].request
        assert first.method == second.method == "PUT"
        assert first.url == second.url
        assert first.content == second.content == body.encode()
        assert second.headers["Content-Type"] == "application/json"

    @respx.mock
    def test_other_errors_do_not_fall_back(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test 5xx responses are terminal on the token path."""
        route = respx.get(f"{BASE_URL}/_cluster/health").mock(
            return_value=httpx.Response(503, json={"error": "unavailable"})
        )

        descriptor = executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))

        assert route.call_count == 1
        assert descriptor.status_code == 503
        assert descriptor.error is None

    @respx.mock
    def test_transport_error_recorded(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test transport errors are stored verbatim and never fall back."""
        route = respx.get(f"{BASE_URL}/_cluster/health").mock(
            side_effect=httpx.ConnectError("connection refused")
        )

        descriptor = executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))

        assert route.call_count == 1
        assert isinstance(descriptor.error, httpx.ConnectError)
        assert descriptor.status_code == 0
        assert descriptor.response is None

    @respx.mock
    def test_transport_error_on_fallback(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test a transport error on the certificate attempt is terminal."""
        respx.get(f"{BASE_URL}/_cluster/health").mock(
            side_effect=[httpx.Response(403), httpx.ConnectTimeout("handshake timed out")]
        )

        descriptor = executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))

        assert isinstance(descriptor.error, httpx.ConnectTimeout)
        assert descriptor.response is None

    @respx.mock
    def test_fallback_survives_unreachable_api_server(
        self,
        tmp_path: Path,
        cluster: ElasticsearchCluster,
        transport_settings: TransportSettings,
    ):
        """Test a Secret read failure still reaches the certificate attempt."""
        api = MagicMock()
        api.read_namespaced_secret.side_effect = MaxRetryError(
            None, "/api/v1/secrets", "connection refused"
        )
        token_file = tmp_path / "token"
        token_file.write_text("test-token")
        provider = FileCredentialProvider(
            token_file, tmp_path, KubernetesSecretMaterializer(tmp_path, api=api)
        )
        executor = RequestExecutor(provider, transport_settings)
        route = respx.get(f"{BASE_URL}/_cluster/health").mock(
            side_effect=[httpx.Response(403), httpx.Response(200, json={"status": "green"})]
        )

        descriptor = executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))
        executor.close()

        api.read_namespaced_secret.assert_called_once()
        assert route.call_count == 2
        assert descriptor.error is None
        assert descriptor.response == {"status": "green"}


@pytest.mark.unit
class TestRequestExecutorBuildErrors:
    """Tests for requests that are never sent."""

    def test_build_url(self, cluster: ElasticsearchCluster):
        """Test the service URL layout."""
        url = RequestExecutor.build_url(cluster, "_cat/indices?h=health,status,index,pri,rep")

        assert url.host == "elasticsearch.openshift-logging.svc"
        assert url.port == 9200
        assert url.path == "/_cat/indices"
        assert url.params["h"] == "health,status,index,pri,rep"

    @respx.mock(assert_all_called=False)
    def test_invalid_url_recorded(
        self,
        executor: RequestExecutor,
        cluster: ElasticsearchCluster,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Test URL failures become RequestBuildError with no HTTP attempt."""

        def broken_url(cluster, uri):
            raise httpx.InvalidURL("Invalid port")

        monkeypatch.setattr(RequestExecutor, "build_url", staticmethod(broken_url))
        route = respx.get(f"{BASE_URL}/_cluster/health")

        descriptor = executor.execute(cluster, OperationDescriptor("GET", "_cluster/health"))

        assert not route.called
        assert isinstance(descriptor.error, RequestBuildError)
        assert descriptor.status_code == 0
        assert descriptor.response is None

    @respx.mock(assert_all_called=False)
    def test_unsupported_method(self, executor: RequestExecutor, cluster: ElasticsearchCluster):
        """Test unsupported methods are rejected before sending."""
        route = respx.delete(f"{BASE_URL}/my-index")

        descriptor = executor.execute(cluster, OperationDescriptor("DELETE", "my-index"))

        assert not route.called
        assert isinstance(descriptor.error, RequestBuildError)
        assert "DELETE" in descriptor.error.message
