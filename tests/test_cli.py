"""Tests for the harmony-api CLI."""

import json
import sys
from unittest.mock import MagicMock, patch

import pytest

from harmony_api.cli import _status, main

HEALTH = {
    "status": "ok",
    "uptime_seconds": 3725,
    "modules": {"mqtt_bridge": "running", "discovery": "failed"},
    "hubs": {"living-room": {"activities": 3, "devices": 2, "current_activity": "watch-tv", "off": False}},
    "requests": 4,
    "timestamp": "2026-10-19T10:00:00+00:00",
}


def _response(payload: dict):
    mock_resp = MagicMock()
    mock_resp.read.return_value = json.dumps(payload).encode()
    mock_resp.__enter__ = lambda s: s
    mock_resp.__exit__ = MagicMock(return_value=False)
    return mock_resp


class TestStatus:
    def test_json_bridge_down(self, capsys):
        with patch("urllib.request.urlopen", side_effect=ConnectionRefusedError("refused")):
            code = _status("http://127.0.0.1:8282", json_output=True)

        data = json.loads(capsys.readouterr().out)
        assert code == 1
        assert data["running"] is False
        assert data["health"] is None
        assert "refused" in data["error"]

    def test_json_bridge_running(self, capsys):
        with patch("urllib.request.urlopen", return_value=_response(HEALTH)) as urlopen:
            code = _status("http://bridge:8282/", json_output=True)

        assert code == 0
        assert urlopen.call_args.args[0].full_url == "http://bridge:8282/health"
        data = json.loads(capsys.readouterr().out)
        assert data["running"] is True
        assert data["health"]["hubs"]["living-room"]["current_activity"] == "watch-tv"

    def test_pretty_output(self, capsys):
        with patch("urllib.request.urlopen", return_value=_response(HEALTH)):
            code = _status("http://127.0.0.1:8282")

        output = capsys.readouterr().out
        assert code == 0
        assert "running" in output
        assert "1h 2m 5s" in output
        assert "1/2 running" in output
        assert "living-room: watch-tv (3 activities, 2 devices)" in output

    def test_pretty_bridge_down(self, capsys):
        with patch("urllib.request.urlopen", side_effect=ConnectionRefusedError):
            assert _status("http://127.0.0.1:8282") == 1

        assert "stopped" in capsys.readouterr().out


class TestMain:
    def test_no_command_prints_help(self, capsys):
        with patch.object(sys, "argv", ["harmony-api"]), pytest.raises(SystemExit) as exc:
            main()

        assert exc.value.code == 1
        assert "serve" in capsys.readouterr().out

    def test_status_exit_code(self):
        with (
            patch.object(sys, "argv", ["harmony-api", "status", "--json"]),
            patch("urllib.request.urlopen", side_effect=ConnectionRefusedError),
            pytest.raises(SystemExit) as exc,
        ):
            main()

        assert exc.value.code == 1

    @pytest.mark.parametrize(
        ("flags", "level"),
        [([], "INFO"), (["--verbose"], "DEBUG"), (["--quiet"], "WARNING")],
    )
    def test_serve_log_level(self, flags, level):
        argv = ["harmony-api", "serve", "--port", "9000", *flags]
        with patch.object(sys, "argv", argv), patch("harmony_api.cli._serve") as serve:
            main()

        serve.assert_called_once_with(None, 9000, None, level)
