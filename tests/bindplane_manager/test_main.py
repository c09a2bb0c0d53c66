"""
Tests for the command line entry point.
"""

from unittest.mock import patch

import yaml

from bindplane_manager.__main__ import build_parser, knob_args, main


class TestParser:
    """Tests for flag parsing."""

    def test_knob_args(self):
        args = build_parser().parse_args(
            ["--server-url", "http://bp:3001", "--offline", "-v", "--tls-ca", "a.pem,b.pem"]
        )
        assert knob_args(args) == {
            "server_url": "http://bp:3001",
            "offline": True,
            "tls_ca": "a.pem,b.pem",
        }
        assert args.verbose is True

    def test_unset_knobs_omitted(self):
        assert knob_args(build_parser().parse_args([])) == {}


class TestMain:
    """Tests for main()."""

    def test_generate_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        code = main(["--config", str(path), "--generate-config", "--port", "4000", "--secret-key", "k"])
        assert code == 0

        data = yaml.safe_load(path.read_text())
        assert data["server"]["port"] == "4000"
        assert data["server"]["secretKey"] == "k"
        assert data["client"]["port"] == "4000"

    def test_validate_config(self, tmp_path, capsys):
        path = tmp_path / "config.yaml"
        path.write_text("server:\n  port: 3002\n")
        assert main(["--config", str(path), "--validate-config"]) == 0
        assert "Configuration valid" in capsys.readouterr().out

        path.write_text("server:\n  tlsCert: cert.pem\n")
        assert main(["--config", str(path), "--validate-config"]) == 1
        assert "tlsCert and tlsKey must be specified together" in capsys.readouterr().out

    def test_invalid_flag_value(self, tmp_path, capsys):
        code = main(["--config", str(tmp_path / "config.yaml"), "--env", "staging"])
        assert code == 1
        assert "Configuration invalid" in capsys.readouterr().err

    def test_run(self, tmp_path):
        path = tmp_path / "config.yaml"
        with patch("bindplane_manager.__main__.setup_logging"), patch(
            "bindplane_manager.__main__.BindPlaneManager"
        ) as manager_class, patch("bindplane_manager.__main__.asyncio") as mock_asyncio:
            assert main(["--config", str(path), "--port", "4001"]) == 0

        config = manager_class.call_args[0][0]
        assert config.server.port == "4001"
        assert config.home() == tmp_path
        mock_asyncio.run.assert_called_once()

    def test_run_failure(self, tmp_path, capsys):
        with patch("bindplane_manager.__main__.setup_logging"), patch(
            "bindplane_manager.__main__.BindPlaneManager", side_effect=RuntimeError("store broken")
        ):
            assert main(["--config", str(tmp_path / "config.yaml")]) == 1
        assert "store broken" in capsys.readouterr().err
