"""
Unit tests for the integration client.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from conftest import make_response
from integration_auth.app.integration import GraphQLResponse, IntegrationClient
from integration_auth.app.integration.client import config_from_integration
from integration_auth.app.tokens import AccessTokenCache
from integration_shared.errors import GraphQLTransportError, NoIntegration, UpstreamError, UpstreamUnavailable

BASE = "https://app.example.com/api/v1"


class TestConfigFromIntegration:
    """Test cases for config_from_integration."""

    def test_enabled_integration(self):
        assert config_from_integration({"enabled": True, "config": {"a": 1}}) == {"a": 1}

    def test_enabled_without_config(self):
        assert config_from_integration({"enabled": True}) == {}
        assert config_from_integration({"enabled": True, "config": None}) == {}

    # "enabled" must be the JSON boolean true; truthy strings and numbers do not count.
    @pytest.mark.parametrize(
        "integration",
        [
            None,
            {},
            [],
            {"enabled": False, "config": {"a": 1}},
            {"enabled": "true", "config": {"a": 1}},
            {"enabled": 1, "config": {"a": 1}},
        ],
    )
    def test_missing_or_disabled(self, integration):
        assert config_from_integration(integration) is None


class TestIntegrationClient:
    """Test cases for IntegrationClient."""

    @pytest.fixture
    def token_cache(self):
        token_cache = MagicMock(spec=AccessTokenCache)
        token_cache.get_auth_header = AsyncMock(return_value="Bearer tok-1")
        return token_cache

    @pytest.fixture
    def client(self, io_bundle, token_cache):
        return IntegrationClient(io_bundle, token_cache, "app.example.com", "client/1")

    @pytest.fixture
    def request_mock(self, io_bundle):
        return io_bundle.http_async_client.request

    def test_urls(self, io_bundle, token_cache):
        client = IntegrationClient(io_bundle, token_cache, "localhost:9000", "c", https=False)

        assert client.integration_url("acme") == "http://localhost:9000/api/v1/acme/integration"
        assert client.graphql_url("acme") == "http://localhost:9000/api/v1/acme/graphql"

    @pytest.mark.asyncio
    async def test_load_integration(self, client, request_mock):
        record = {"enabled": True, "config": {"shop": "acme.myshopify.com"}}
        request_mock.return_value = make_response(200, json=record)

        assert await client.load_integration("acme") == record

        args, kwargs = request_mock.call_args
        assert args == ("GET", f"{BASE}/acme/integration/client%2F1")
        assert kwargs["headers"] == {"Accept-Encoding": "gzip,deflate", "Authorization": "Bearer tok-1"}
        assert kwargs["timeout"].connect == 2.5
        assert kwargs["timeout"].read == 5.0

    @pytest.mark.asyncio
    async def test_load_integration_not_found(self, client, request_mock):
        request_mock.return_value = make_response(404, text="not found")

        assert await client.load_integration("acme") is None

    @pytest.mark.asyncio
    async def test_load_integration_server_error(self, client, request_mock):
        request_mock.return_value = make_response(500, text="boom")

        with pytest.raises(UpstreamError) as exc_info:
            await client.load_integration("acme")

        assert exc_info.value.status == 500
        assert exc_info.value.body == "boom"
        assert exc_info.value.uri == f"{BASE}/acme/integration/client%2F1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [[], ["enabled"], "enabled", 1])
    async def test_load_integration_non_object_record(self, client, request_mock, body):
        request_mock.return_value = make_response(200, json=body)

        with pytest.raises(UpstreamError) as exc_info:
            await client.load_integration("acme")

        assert exc_info.value.status == 200
        assert exc_info.value.message == (
            f"Integration record from [{BASE}/acme/integration/client%2F1] is not a JSON object"
        )

    @pytest.mark.asyncio
    async def test_update_with_non_object_record_does_not_write(self, client, request_mock):
        request_mock.return_value = make_response(200, json=[{"enabled": True}])

        with pytest.raises(UpstreamError):
            await client.update_integration_config("acme", {"a": 1})

        request_mock.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_load_integration_network_error(self, client, request_mock):
        request_mock.side_effect = httpx.ConnectError("refused")

        with pytest.raises(UpstreamUnavailable):
            await client.load_integration("acme")

    @pytest.mark.asyncio
    async def test_cached_integration_is_reused(self, client, request_mock):
        request_mock.return_value = make_response(200, json={"enabled": True, "config": {"a": 1}})

        assert await client.get_cached_integration_config("acme") == {"a": 1}
        assert await client.get_cached_integration_config("acme") == {"a": 1}

        request_mock.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_integration_is_not_cached(self, client, request_mock):
        request_mock.return_value = make_response(404)

        assert await client.get_cached_integration("acme") is None
        assert await client.get_cached_integration("acme") is None

        assert request_mock.await_count == 2

    @pytest.mark.asyncio
    async def test_cached_config_of_disabled_integration(self, client, request_mock):
        request_mock.return_value = make_response(200, json={"enabled": False, "config": {"a": 1}})

        assert await client.get_cached_integration_config("acme") is None

    @pytest.mark.asyncio
    async def test_clear_integration_cache(self, client, request_mock):
        request_mock.return_value = make_response(200, json={"enabled": True})

        await client.get_cached_integration("acme")
        client.clear_integration_cache("acme")
        await client.get_cached_integration("acme")

        assert request_mock.await_count == 2

    @pytest.mark.asyncio
    async def test_load_integration_config_bypasses_cache(self, client, request_mock):
        request_mock.return_value = make_response(200, json={"enabled": True, "config": {"a": 1}})

        await client.load_integration_config("acme")
        await client.load_integration_config("acme")

        assert request_mock.await_count == 2

    @pytest.mark.asyncio
    async def test_update_integration_config_merges_and_invalidates(self, client, request_mock):
        request_mock.side_effect = [
            # Cached read before the update.
            make_response(200, json={"enabled": True, "config": {"a": 1}}),
            # Fresh read inside update.
            make_response(200, json={"enabled": True, "config": {"a": 1}}),
            make_response(200, json={"enabled": True, "config": {"a": 1, "b": 2}}),
            # Cached read after the update.
            make_response(200, json={"enabled": True, "config": {"a": 1, "b": 2}}),
        ]

        assert await client.get_cached_integration_config("acme") == {"a": 1}
        result = await client.update_integration_config("acme", {"b": 2})

        assert result == {"enabled": True, "config": {"a": 1, "b": 2}}
        put_args, put_kwargs = request_mock.call_args_list[2]
        assert put_args == ("PUT", f"{BASE}/acme/integration")
        assert json.loads(put_kwargs["content"]) == {"enabled": True, "config": {"a": 1, "b": 2}}
        assert put_kwargs["headers"]["Content-Type"] == "application/json"

        assert await client.get_cached_integration_config("acme") == {"a": 1, "b": 2}
        assert request_mock.await_count == 4

    @pytest.mark.asyncio
    async def test_update_answered_without_content(self, client, request_mock):
        request_mock.side_effect = [
            make_response(200, json={"enabled": True, "config": {"a": 1}}),
            make_response(204),
            make_response(200, json={"enabled": True, "config": {"a": 1, "b": 2}}),
        ]

        result = await client.update_integration_config("acme", {"b": 2})

        assert result == {"enabled": True, "config": {"a": 1, "b": 2}}
        assert await client.get_cached_integration_config("acme") == {"a": 1, "b": 2}
        assert request_mock.await_count == 3

    @pytest.mark.asyncio
    async def test_update_merges_nested_objects(self, client, request_mock):
        request_mock.side_effect = [
            make_response(200, json={"enabled": True, "config": {"shop": {"name": "a", "plan": "basic"}}}),
            make_response(200, json={}),
        ]

        await client.update_integration_config("acme", {"shop": {"plan": "plus"}, "sync": True})

        sent = json.loads(request_mock.call_args_list[1].kwargs["content"])
        assert sent["config"] == {"shop": {"name": "a", "plan": "plus"}, "sync": True}

    @pytest.mark.asyncio
    async def test_update_without_existing_config(self, client, request_mock):
        request_mock.side_effect = [
            make_response(200, json={"enabled": True, "config": None}),
            make_response(200, json={}),
        ]

        await client.update_integration_config("acme", {"a": 1})

        sent = json.loads(request_mock.call_args_list[1].kwargs["content"])
        assert sent["config"] == {"a": 1}

    @pytest.mark.asyncio
    async def test_update_without_integration(self, client, request_mock):
        request_mock.return_value = make_response(404)

        with pytest.raises(NoIntegration) as exc_info:
            await client.update_integration_config("acme", {"a": 1})

        assert exc_info.value.message == "Tenant[acme] does not have an integration"
        request_mock.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_update_keeps_cache(self, client, request_mock):
        request_mock.side_effect = [
            make_response(200, json={"enabled": True, "config": {"a": 1}}),
            make_response(200, json={"enabled": True, "config": {"a": 1}}),
            make_response(409, text="conflict"),
        ]

        await client.get_cached_integration("acme")
        with pytest.raises(UpstreamError) as exc_info:
            await client.update_integration_config("acme", {"b": 2})

        assert exc_info.value.message == "status[409] received when updating integration. Response: conflict"
        assert await client.get_cached_integration_config("acme") == {"a": 1}
        assert request_mock.await_count == 3

    @pytest.mark.asyncio
    async def test_graphql_request_body(self, client, request_mock):
        request_mock.return_value = make_response(200, json={"data": {"viewer": {"id": "1"}}})

        result = await client.graphql("acme", "query Q { viewer { id } }", "Q", {"first": 10})

        assert isinstance(result, GraphQLResponse)
        assert result.data == {"viewer": {"id": "1"}}
        assert not result.has_errors
        args, kwargs = request_mock.call_args
        assert args == ("POST", f"{BASE}/acme/graphql")
        assert json.loads(kwargs["content"]) == {
            "query": "query Q { viewer { id } }",
            "operationName": "Q",
            "variables": {"first": 10},
        }

    @pytest.mark.asyncio
    async def test_graphql_omits_absent_fields(self, client, request_mock):
        request_mock.return_value = make_response(200, json={"data": None})

        await client.graphql("acme", "{ viewer { id } }", variables={})

        assert json.loads(request_mock.call_args.kwargs["content"]) == {"query": "{ viewer { id } }"}

    @pytest.mark.asyncio
    async def test_graphql_errors_are_returned(self, client, request_mock):
        request_mock.return_value = make_response(
            200, json={"data": None, "errors": [{"message": "Not authorized"}]}
        )

        result = await client.graphql("acme", "{ viewer { id } }")

        assert result.has_errors
        assert result.errors == [{"message": "Not authorized"}]

    @pytest.mark.asyncio
    async def test_graphql_transport_error(self, client, request_mock):
        request_mock.return_value = make_response(502, text="bad gateway")

        with pytest.raises(GraphQLTransportError) as exc_info:
            await client.graphql("acme", "{ viewer { id } }")

        assert exc_info.value.status == 502
        assert exc_info.value.tenant_alias == "acme"
        assert exc_info.value.message == (
            "Status[502] received for GraphQL request for tenant[acme]. Body: bad gateway"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_graphql_blank_query(self, client, request_mock, query):
        with pytest.raises(ValueError):
            await client.graphql("acme", query)

        request_mock.assert_not_awaited()
