"""Unit tests for the ARM / Key Vault REST client."""

from datetime import datetime, timedelta, timezone

import pytest
import requests

from lazykv.azure.client import AzureClientError
from lazykv.azure.credential import TokenCache
from lazykv.azure.rest import AzureRestClient, classify_status, resource_group_of
from lazykv.models import ErrorKind, Resource, ResourceKind, Token

VAULT = Resource(
    id="/subscriptions/s1/resourceGroups/rg1/providers/Microsoft.KeyVault/vaults/kv1",
    name="kv1",
    kind=ResourceKind.KEY_VAULT,
    subscription_id="s1",
    resource_group="rg1",
    endpoint="https://kv1.vault.azure.net/",
)
APP = Resource(
    id="/subscriptions/s1/resourceGroups/rg1/providers/Microsoft.App/containerApps/api",
    name="api",
    kind=ResourceKind.CONTAINER_APP,
    subscription_id="s1",
    resource_group="rg1",
)


class FakeResponse:
    def __init__(self, status_code=200, body=None, reason="OK"):
        self.status_code = status_code
        self._body = body
        self.reason = reason
        self.content = b"" if body is None else b"x"
        self.text = ""

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


class FakeSession:
    """Replays queued responses and records each request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[dict] = []

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.requests.append({"method": method, "url": url, "headers": headers, "json": json})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _tokens():
    def issuer(tenant_id, resource):
        return Token(
            access_token=f"{tenant_id}:{resource}",
            expires_on=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    return TokenCache(issuer)


class TestHelpers:
    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ErrorKind.NOT_AUTHENTICATED),
            (403, ErrorKind.ACCESS_DENIED),
            (404, ErrorKind.NOT_FOUND),
            (408, ErrorKind.NETWORK_OR_THROTTLING),
            (429, ErrorKind.NETWORK_OR_THROTTLING),
            (503, ErrorKind.NETWORK_OR_THROTTLING),
            (409, ErrorKind.UNKNOWN),
        ],
    )
    def test_classify_status(self, status, kind):
        assert classify_status(status) is kind

    def test_resource_group_of(self):
        assert resource_group_of(VAULT.id) == "rg1"
        assert resource_group_of("/subscriptions/s1") == ""


class TestListings:
    def test_key_vaults_follow_next_link(self):
        """
        Given an ARM listing split over two pages
        When key vaults are listed
        Then both pages are read and the vault URI comes from properties
        """
        session = FakeSession(
            FakeResponse(
                body={
                    "value": [
                        {
                            "id": VAULT.id,
                            "name": "kv1",
                            "location": "westeurope",
                            "properties": {"vaultUri": "https://kv1.vault.azure.net/"},
                        }
                    ],
                    "nextLink": "https://management.azure.com/next-page",
                }
            ),
            FakeResponse(
                body={
                    "value": [
                        {
                            "id": "/subscriptions/s1/resourceGroups/rg2/providers/Microsoft.KeyVault/vaults/kv2",
                            "name": "kv2",
                        }
                    ]
                }
            ),
        )
        client = AzureRestClient(_tokens(), session=session)

        vaults = client.list_key_vaults("s1", "t1")

        assert [v.name for v in vaults] == ["kv1", "kv2"]
        assert vaults[0].vault_uri == "https://kv1.vault.azure.net"
        assert vaults[1].resource_group == "rg2"
        assert session.requests[1]["url"] == "https://management.azure.com/next-page"
        assert session.requests[0]["headers"]["Authorization"] == "Bearer t1:https://management.azure.com"

    def test_container_apps(self):
        session = FakeSession(FakeResponse(body={"value": [{"id": APP.id, "name": "api"}]}))
        apps = AzureRestClient(_tokens(), session=session).list_container_apps("s1", "t1")
        assert apps[0].kind is ResourceKind.CONTAINER_APP
        assert apps[0].resource_group == "rg1"

    def test_container_app_secrets_carry_values(self):
        """
        Given a listSecrets response
        When container app secrets are listed
        Then each SecretMeta carries its value and the call is a POST
        """
        session = FakeSession(FakeResponse(body={"value": [{"name": "db", "value": "s3cret"}]}))
        secrets = AzureRestClient(_tokens(), session=session).list_container_app_secrets(APP, "t1")
        assert secrets[0].name == "db"
        assert secrets[0].value == "s3cret"
        assert session.requests[0]["method"] == "POST"
        assert session.requests[0]["url"].startswith(f"https://management.azure.com{APP.id}/listSecrets")

    def test_vault_secrets_use_data_plane_token(self):
        """
        Given a Key Vault secret listing
        When secrets are listed
        Then names come from the id and the vault scope is used
        """
        session = FakeSession(
            FakeResponse(
                body={
                    "value": [
                        {
                            "id": "https://kv1.vault.azure.net/secrets/db-password",
                            "contentType": "text/plain",
                            "attributes": {"enabled": True, "created": 1767225600},
                        }
                    ]
                }
            )
        )
        secrets = AzureRestClient(_tokens(), session=session).list_vault_secrets(VAULT, "t1")

        assert secrets[0].name == "db-password"
        assert secrets[0].content_type == "text/plain"
        assert secrets[0].attributes.enabled is True
        assert secrets[0].attributes.created.startswith("2026-01-01T00:00:00")
        assert session.requests[0]["headers"]["Authorization"] == "Bearer t1:https://vault.azure.net"


class TestSecretValues:
    def test_get_vault_secret(self):
        session = FakeSession(FakeResponse(body={"value": "hunter2", "attributes": {"enabled": True}}))
        value = AzureRestClient(_tokens(), session=session).get_vault_secret(VAULT, "db", "t1")
        assert value.value == "hunter2"
        assert session.requests[0]["url"].startswith("https://kv1.vault.azure.net/secrets/db?")

    def test_set_vault_secret_puts_value(self):
        session = FakeSession(FakeResponse(body={"value": "new"}))
        AzureRestClient(_tokens(), session=session).set_vault_secret(VAULT, "db", "new", "t1")
        assert session.requests[0]["method"] == "PUT"
        assert session.requests[0]["json"] == {"value": "new"}

    def test_delete_with_empty_body(self):
        session = FakeSession(FakeResponse(status_code=200, body=None))
        AzureRestClient(_tokens(), session=session).delete_vault_secret(VAULT, "db", "t1")
        assert session.requests[0]["method"] == "DELETE"


class TestErrors:
    def test_http_error_is_classified(self):
        """
        Given a 403 with an ARM error body
        When a listing is requested
        Then AzureClientError carries ACCESS_DENIED and the service message
        """
        session = FakeSession(
            FakeResponse(
                status_code=403,
                body={"error": {"code": "Forbidden", "message": "Caller is not authorized"}},
                reason="Forbidden",
            )
        )
        with pytest.raises(AzureClientError) as info:
            AzureRestClient(_tokens(), session=session).list_vault_secrets(VAULT, "t1")
        assert info.value.kind is ErrorKind.ACCESS_DENIED
        assert "Caller is not authorized" in str(info.value)

    def test_connection_error_is_network(self):
        session = FakeSession(requests.ConnectionError("dns failure"))
        with pytest.raises(AzureClientError) as info:
            AzureRestClient(_tokens(), session=session).list_key_vaults("s1", "t1")
        assert info.value.kind is ErrorKind.NETWORK_OR_THROTTLING
