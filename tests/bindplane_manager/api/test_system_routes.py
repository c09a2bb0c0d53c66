"""
Tests for the version and install command routes, and authentication.
"""

RELEASES = "https://github.com/observiq/observiq-otel-collector/releases"


class TestVersion:
    """Tests for GET /v1/version."""

    def test_version(self, client):
        response = client.get("/v1/version")
        assert response.status_code == 200
        assert response.json() == {"commit": "unknown", "tag": "v1.0.0"}


class TestInstallCommand:
    """Tests for GET /v1/agent-versions/{version}/install-command."""

    def test_linux(self, client):
        response = client.get(
            "/v1/agent-versions/v1.2.0/install-command",
            params={"platform": "linux", "labels": "env=prod"},
        )
        assert response.status_code == 200
        assert response.json()["command"] == (
            f'sudo sh -c "$(curl -fsSlL {RELEASES}/download/v1.2.0/install_unix.sh)" '
            "install_unix.sh -e ws://127.0.0.1:3001/v1/opamp -s secret -k env=prod -v 1.2.0"
        )

    def test_windows_latest(self, client):
        response = client.get(
            "/v1/agent-versions/latest/install-command", params={"platform": "windows"}
        )
        assert response.json()["command"] == (
            f'msiexec /i "{RELEASES}/latest/download/observiq-otel-collector.msi" /quiet'
            " ENABLEMANAGEMENT=1 OPAMPENDPOINT=ws://127.0.0.1:3001/v1/opamp OPAMPSECRETKEY=secret"
        )

    def test_overrides(self, client):
        response = client.get(
            "/v1/agent-versions/1.2.0/install-command",
            params={
                "platform": "macos",
                "secret-key": "other",
                "remote-url": "wss://bindplane.example.com/v1/opamp",
            },
        )
        assert response.json()["command"] == (
            f'sudo sh -c "$(curl -fsSlL {RELEASES}/download/v1.2.0/install_macos.sh)" '
            "install_macos.sh -e wss://bindplane.example.com/v1/opamp -s other -v 1.2.0"
        )

    def test_unknown_platform(self, client):
        response = client.get(
            "/v1/agent-versions/latest/install-command", params={"platform": "plan9"}
        )
        assert response.status_code == 400
        assert response.json() == {"errors": ["unknown platform: plan9"]}


class TestAuthentication:
    """Tests for basic auth outside development mode."""

    def test_requires_credentials(self, client, monkeypatch):
        monkeypatch.setenv("BINDPLANE_AUTH_MODE", "production")
        response = client.get("/v1/version")
        assert response.status_code == 401
        assert response.json() == {"errors": ["invalid username or password"]}
        assert response.headers["www-authenticate"] == "Basic"

    def test_wrong_password(self, client, monkeypatch):
        monkeypatch.setenv("BINDPLANE_AUTH_MODE", "production")
        response = client.get("/v1/version", auth=("admin", "wrong"))
        assert response.status_code == 401

    def test_valid_credentials(self, client, monkeypatch):
        monkeypatch.setenv("BINDPLANE_AUTH_MODE", "production")
        response = client.get("/v1/version", auth=("admin", "admin"))
        assert response.status_code == 200
