"""Tests for reMarkable device registration and token exchange."""

from unittest.mock import MagicMock, patch

import pytest


def _resp(status=200, text="token-value\n"):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    return resp


class TestRegisterDevice:
    @patch("zotero_remarkable.remarkable_auth.requests.post")
    def test_returns_stripped_token(self, mock_post):
        from zotero_remarkable.remarkable_auth import register_device

        mock_post.return_value = _resp(text="  device-token\n")
        assert register_device("abcdefgh") == "device-token"

        payload = mock_post.call_args[1]["json"]
        assert payload["code"] == "abcdefgh"
        assert payload["deviceDesc"].startswith("desktop-")
        assert payload["deviceID"]

    @patch("zotero_remarkable.remarkable_auth.requests.post")
    def test_failure_raises_token_error(self, mock_post):
        from zotero_remarkable.remarkable_auth import TokenError, register_device

        mock_post.return_value = _resp(status=400, text="invalid code")
        with pytest.raises(TokenError, match="invalid code"):
            register_device("bad")


class TestGetUserToken:
    @patch("zotero_remarkable.remarkable_auth.requests.post")
    def test_sends_bearer_device_token(self, mock_post):
        from zotero_remarkable.remarkable_auth import get_user_token

        mock_post.return_value = _resp(text="user-token")
        assert get_user_token("device-token", timeout=7) == "user-token"

        kwargs = mock_post.call_args[1]
        assert kwargs["headers"] == {"Authorization": "Bearer device-token"}
        assert kwargs["timeout"] == 7

    @patch("zotero_remarkable.remarkable_auth.requests.post")
    def test_failure_raises_token_error(self, mock_post):
        from zotero_remarkable.remarkable_auth import TokenError, get_user_token

        mock_post.return_value = _resp(status=401, text="unauthorized")
        with pytest.raises(TokenError):
            get_user_token("device-token")


class TestRegisterInteractive:
    def test_saves_token_to_env(self, monkeypatch):
        from zotero_remarkable import remarkable_auth

        saved = {}
        monkeypatch.setattr("builtins.input", lambda _: "abcdefgh")
        monkeypatch.setattr(remarkable_auth, "register_device", lambda code: "dev-tok")
        monkeypatch.setattr(remarkable_auth, "get_user_token", lambda tok: "user-tok")
        monkeypatch.setattr(remarkable_auth, "save_to_env", lambda k, v: saved.update({k: v}))

        remarkable_auth.register_interactive()
        assert saved == {"REMARKABLE_TOKEN": "dev-tok"}

    def test_empty_code_saves_nothing(self, monkeypatch, capsys):
        from zotero_remarkable import remarkable_auth

        save = MagicMock()
        monkeypatch.setattr("builtins.input", lambda _: "  ")
        monkeypatch.setattr(remarkable_auth, "save_to_env", save)

        remarkable_auth.register_interactive()
        save.assert_not_called()
        assert "No code provided" in capsys.readouterr().out
