"""Tests for Supabase access-token resolution."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import ALICE_ID
from storefront.services.auth_service import extract_bearer_token, get_user_id_from_token


@pytest.mark.parametrize("header,token", [
    ("Bearer abc.def.ghi", "abc.def.ghi"),
    ("bearer  abc ", "abc"),
    ("Basic dXNlcjpwYXNz", None),
    ("Bearer", None),
    ("Bearer   ", None),
    ("", None),
    (None, None),
])
def test_extract_bearer_token(header, token):
    assert extract_bearer_token(header) == token


def _response(status_code=200, body=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status_code
    if json_error:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


class TestGetUserIdFromToken:

    @patch("storefront.services.auth_service.requests.get")
    def test_valid_token(self, mock_get, app):
        mock_get.return_value = _response(body={"id": ALICE_ID, "email": "a@example.com"})

        with app.app_context():
            assert get_user_id_from_token("token-alice") == ALICE_ID

        url = mock_get.call_args[0][0]
        headers = mock_get.call_args[1]["headers"]
        assert url == "https://project.supabase.test/auth/v1/user"
        assert headers["apikey"] == "anon-test-key"
        assert headers["Authorization"] == "Bearer token-alice"

    @patch("storefront.services.auth_service.requests.get")
    def test_rejected_token(self, mock_get, app):
        mock_get.return_value = _response(status_code=401, body={"msg": "invalid JWT"})
        with app.app_context():
            assert get_user_id_from_token("expired") is None

    @patch("storefront.services.auth_service.requests.get")
    def test_unreachable(self, mock_get, app):
        mock_get.side_effect = requests.ConnectionError("down")
        with app.app_context():
            assert get_user_id_from_token("token-alice") is None

    @patch("storefront.services.auth_service.requests.get")
    def test_non_json_body(self, mock_get, app):
        mock_get.return_value = _response(json_error=True)
        with app.app_context():
            assert get_user_id_from_token("token-alice") is None

    @pytest.mark.parametrize("body", [
        {"id": "not-a-uuid"},
        {"id": "00000000-0000-0000-0000-000000000000"},
        {},
        ["unexpected"],
    ])
    @patch("storefront.services.auth_service.requests.get")
    def test_unusable_user_id(self, mock_get, app, body):
        mock_get.return_value = _response(body=body)
        with app.app_context():
            assert get_user_id_from_token("token-alice") is None

    @patch("storefront.services.auth_service.requests.get")
    def test_empty_token_skips_lookup(self, mock_get, app):
        with app.app_context():
            assert get_user_id_from_token("") is None
        mock_get.assert_not_called()
