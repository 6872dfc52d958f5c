"""Unit tests for the Azure CLI wrapper."""

import json
import subprocess
from datetime import datetime, timezone

import pytest

from lazykv.azure.client import (
    AzureCliClient,
    AzureClientError,
    _describe,
    classify_stderr,
    parse_token,
)
from lazykv.models import ErrorKind, Resource, ResourceKind

APP = Resource(
    id="/subscriptions/s1/resourceGroups/rg1/providers/Microsoft.App/containerApps/api",
    name="api",
    kind=ResourceKind.CONTAINER_APP,
    subscription_id="s1",
    resource_group="rg1",
)


class FakeRun:
    """Stands in for subprocess.run and records every command."""

    def __init__(self, stdout="", stderr="", returncode=0):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.commands: list[list[str]] = []

    def __call__(self, cmd, capture_output, text):
        self.commands.append(cmd)
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


class TestClassifyStderr:
    @pytest.mark.parametrize(
        ("stderr", "kind"),
        [
            ("ERROR: Please run 'az login' to setup account.", ErrorKind.NOT_AUTHENTICATED),
            ("AADSTS700082: The refresh token has expired", ErrorKind.NOT_AUTHENTICATED),
            ("(AuthorizationFailed) The client does not have authorization", ErrorKind.ACCESS_DENIED),
            ("(ResourceNotFound) The Resource 'x' was not found", ErrorKind.NOT_FOUND),
            ("(TooManyRequests) Rate limit exceeded", ErrorKind.NETWORK_OR_THROTTLING),
            ("Connection aborted.", ErrorKind.NETWORK_OR_THROTTLING),
            ("something odd happened", ErrorKind.UNKNOWN),
        ],
    )
    def test_known_messages(self, stderr, kind):
        assert classify_stderr(stderr) is kind


class TestParseToken:
    def test_prefers_epoch_expiry(self):
        """
        Given CLI output with both expires_on and expiresOn
        When parsed
        Then the POSIX expires_on wins and is UTC-aware
        """
        payload = json.dumps(
            {
                "accessToken": "abc",
                "expiresOn": "2030-01-01 00:00:00.000000",
                "expires_on": 1767225600,
            }
        )
        token = parse_token(payload)
        assert token.access_token == "abc"
        assert token.expires_on == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_falls_back_to_local_time_string(self):
        """
        Given CLI output with only expiresOn
        When parsed
        Then an aware datetime is returned
        """
        token = parse_token(json.dumps({"accessToken": "abc", "expiresOn": "2030-01-01 00:00:00.000000"}))
        assert token.expires_on.tzinfo is not None

    def test_missing_token_raises(self):
        with pytest.raises(AzureClientError, match="Access token"):
            parse_token(json.dumps({"expires_on": 1}))

    def test_missing_expiry_raises(self):
        with pytest.raises(AzureClientError, match="expiry"):
            parse_token(json.dumps({"accessToken": "abc"}))


class TestDescribe:
    def test_secret_values_are_masked(self):
        cmd = ["az", "containerapp", "secret", "set", "--secrets", "db=hunter2"]
        assert _describe(cmd) == "az containerapp secret set --secrets db=***"


class TestAzureCliClient:
    def test_list_accounts_parses_payload(self, monkeypatch):
        """
        Given az account list output with two subscriptions
        When list_accounts is called
        Then Accounts carry id, name, tenant, user and default flag
        """
        payload = [
            {
                "id": "s1",
                "name": "dev-payments",
                "tenantId": "t1",
                "user": {"name": "alice@contoso.com", "type": "user"},
                "isDefault": True,
                "state": "Enabled",
            },
            {"id": "s2", "name": "payments-prd", "tenantId": "t1", "user": None, "isDefault": False},
        ]
        fake = FakeRun(stdout=json.dumps(payload))
        monkeypatch.setattr("lazykv.azure.client.subprocess.run", fake)

        accounts = AzureCliClient().list_accounts()

        assert fake.commands == [["az", "account", "list", "--all", "--output", "json"]]
        assert [a.id for a in accounts] == ["s1", "s2"]
        assert accounts[0].user_name == "alice@contoso.com"
        assert accounts[0].is_default is True
        assert accounts[1].owner == "t1"

    def test_get_access_token_passes_tenant(self, monkeypatch):
        fake = FakeRun(stdout=json.dumps({"accessToken": "abc", "expires_on": 1767225600}))
        monkeypatch.setattr("lazykv.azure.client.subprocess.run", fake)

        AzureCliClient().get_access_token("t1", "https://vault.azure.net")

        assert fake.commands[0][-2:] == ["--tenant", "t1"]
        assert "https://vault.azure.net" in fake.commands[0]

    def test_get_access_token_without_tenant(self, monkeypatch):
        fake = FakeRun(stdout=json.dumps({"accessToken": "abc", "expires_on": 1767225600}))
        monkeypatch.setattr("lazykv.azure.client.subprocess.run", fake)

        AzureCliClient().get_access_token("", "https://vault.azure.net")

        assert "--tenant" not in fake.commands[0]

    def test_set_container_app_secret_uses_server_side_merge(self, monkeypatch):
        """
        Given a Container App
        When a secret is set
        Then 'az containerapp secret set --secrets name=value' runs for that app only
        """
        fake = FakeRun()
        monkeypatch.setattr("lazykv.azure.client.subprocess.run", fake)

        AzureCliClient().set_container_app_secret(APP, "db", "s3cret")

        cmd = fake.commands[0]
        assert cmd[:4] == ["az", "containerapp", "secret", "set"]
        assert cmd[cmd.index("--name") + 1] == "api"
        assert cmd[cmd.index("--resource-group") + 1] == "rg1"
        assert cmd[cmd.index("--secrets") + 1] == "db=s3cret"

    def test_remove_container_app_secret(self, monkeypatch):
        fake = FakeRun()
        monkeypatch.setattr("lazykv.azure.client.subprocess.run", fake)

        AzureCliClient().remove_container_app_secret(APP, "db")

        cmd = fake.commands[0]
        assert cmd[:4] == ["az", "containerapp", "secret", "remove"]
        assert cmd[cmd.index("--secret-names") + 1] == "db"

    def test_non_zero_exit_raises_classified_error(self, monkeypatch):
        """
        Given az exits non-zero with a login hint
        When any command runs
        Then AzureClientError carries NOT_AUTHENTICATED and the value stays masked
        """
        fake = FakeRun(stderr="Please run 'az login'", returncode=1)
        monkeypatch.setattr("lazykv.azure.client.subprocess.run", fake)

        with pytest.raises(AzureClientError) as info:
            AzureCliClient().set_container_app_secret(APP, "db", "s3cret")

        assert info.value.kind is ErrorKind.NOT_AUTHENTICATED
        assert "s3cret" not in str(info.value)

    def test_missing_executable_raises(self, monkeypatch):
        def boom(cmd, capture_output, text):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr("lazykv.azure.client.subprocess.run", boom)

        with pytest.raises(AzureClientError, match="not found"):
            AzureCliClient("az-missing").list_accounts()

    def test_is_logged_in_false_on_failure(self, monkeypatch):
        monkeypatch.setattr(
            "lazykv.azure.client.subprocess.run", FakeRun(stderr="az login", returncode=1)
        )
        assert AzureCliClient().is_logged_in() is False

    def test_is_installed_uses_path_lookup(self, monkeypatch):
        monkeypatch.setattr("lazykv.azure.client.shutil.which", lambda name: None)
        assert AzureCliClient().is_installed() is False
