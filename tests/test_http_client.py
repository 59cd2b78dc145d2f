"""Tests for the HTTP client error mapping."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from citekit import HttpClient, HttpResponse, HttpStatusError, NetworkError, ParseError


def _raw_response(status=200, text="", content_type="application/json", url="https://api.example.test/x"):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.url = url
    resp.headers = {"content-type": content_type}
    return resp


class TestHttpClient:
    """Tests for HttpClient."""

    @patch("httpx.Client")
    def test_sets_user_agent_and_redirects(self, mock_client_class):
        HttpClient(timeout=5, user_agent="citekit-test/1.0")
        kwargs = mock_client_class.call_args.kwargs
        assert kwargs["headers"]["User-Agent"] == "citekit-test/1.0"
        assert kwargs["follow_redirects"] is True
        assert kwargs["verify"] is True

    @patch("httpx.Client")
    def test_get_success(self, mock_client_class):
        mock_client_class.return_value.request.return_value = _raw_response(text='{"ok": true}')
        resp = HttpClient().get("https://api.example.test/x", params={"q": "a"})
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        method, url = mock_client_class.return_value.request.call_args.args
        assert (method, url) == ("GET", "https://api.example.test/x")
        assert mock_client_class.return_value.request.call_args.kwargs["params"] == {"q": "a"}

    @patch("httpx.Client")
    def test_non_2xx_raises_status_error(self, mock_client_class):
        mock_client_class.return_value.request.return_value = _raw_response(status=404, text="missing")
        with pytest.raises(HttpStatusError) as exc_info:
            HttpClient().get("https://api.example.test/x")
        assert exc_info.value.code == 404
        assert exc_info.value.body == "missing"
        assert exc_info.value.to_dict()["kind"] == "http_status_error"

    @patch("httpx.Client")
    def test_timeout_maps_to_network_error(self, mock_client_class):
        mock_client_class.return_value.request.side_effect = httpx.ReadTimeout("slow")
        with pytest.raises(NetworkError, match="timed out"):
            HttpClient().get("https://api.example.test/x")

    @patch("httpx.Client")
    def test_transport_error_maps_to_network_error(self, mock_client_class):
        mock_client_class.return_value.request.side_effect = httpx.ConnectError("refused")
        with pytest.raises(NetworkError):
            HttpClient().get("https://api.example.test/x")

    @patch("httpx.Client")
    def test_per_request_timeout(self, mock_client_class):
        mock_client_class.return_value.request.return_value = _raw_response()
        HttpClient(timeout=30).head("https://example.test/", timeout=10)
        timeout = mock_client_class.return_value.request.call_args.kwargs["timeout"]
        assert timeout == httpx.Timeout(10)


class TestHttpResponse:
    """Tests for body decoding."""

    def test_invalid_json_raises_parse_error(self):
        with pytest.raises(ParseError):
            HttpResponse(200, "<html>", url="u").json()

    def test_invalid_xml_raises_parse_error(self):
        with pytest.raises(ParseError):
            HttpResponse(200, "<unclosed>", url="u").xml()

    def test_content_type_is_case_insensitive(self):
        assert HttpResponse(200, "", headers={"Content-Type": "Text/HTML"}).content_type == "text/html"
