"""Unit tests for the WhatsApp Cloud API gateway."""

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from akeed.services import whatsapp_gateway


@pytest.fixture()
def configured_gateway(monkeypatch: pytest.MonkeyPatch) -> whatsapp_gateway.WhatsAppGateway:
    monkeypatch.setattr(whatsapp_gateway.settings, "wa_access_token", "EAAG-test")
    monkeypatch.setattr(whatsapp_gateway.settings, "wa_phone_number_id", "106540352242922")
    return whatsapp_gateway.WhatsAppGateway()


@pytest.fixture()
def unconfigured_gateway(monkeypatch: pytest.MonkeyPatch) -> whatsapp_gateway.WhatsAppGateway:
    monkeypatch.setattr(whatsapp_gateway.settings, "wa_access_token", "")
    return whatsapp_gateway.WhatsAppGateway()


@pytest.fixture()
def response_factory() -> Callable[[dict[str, Any], int], MagicMock]:
    def _build(payload: dict[str, Any], status_code: int = 200) -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = payload
        return response

    return _build


@pytest.fixture()
def mocked_http_client() -> tuple[MagicMock, MagicMock]:
    with patch("akeed.services.whatsapp_gateway.httpx.Client") as mock_client_cls:
        mock_client = MagicMock(name="mock_httpx_client")
        mock_client_cls.return_value.__enter__.return_value = mock_client
        yield mock_client_cls, mock_client


def test_is_configured_requires_token_and_phone_number(configured_gateway, unconfigured_gateway):
    assert configured_gateway.is_configured() is True
    assert unconfigured_gateway.is_configured() is False


def test_send_raises_when_unconfigured(unconfigured_gateway, mocked_http_client):
    mock_client_cls, _ = mocked_http_client

    with pytest.raises(RuntimeError, match="WhatsApp is not configured"):
        unconfigured_gateway.send_verification_message("+966501234567", "1001", "100.00 SAR", "v-1")

    mock_client_cls.assert_not_called()


def test_send_posts_template_with_reply_buttons(
    configured_gateway, mocked_http_client, response_factory
):
    mock_client_cls, mock_client = mocked_http_client
    mock_client.post.return_value = response_factory(
        {"messaging_product": "whatsapp", "messages": [{"id": "wamid.HBgM001"}]}
    )

    result = configured_gateway.send_verification_message(
        "+966501234567", "#1042", "249.00 SAR", "3f1c9a4e-0000-4000-8000-000000000001"
    )

    assert result.provider_message_id == "wamid.HBgM001"
    mock_client_cls.assert_called_once_with(timeout=30)
    url = mock_client.post.call_args.args[0]
    assert url == "https://graph.facebook.com/v24.0/106540352242922/messages"
    headers = mock_client.post.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer EAAG-test"

    payload = mock_client.post.call_args.kwargs["json"]
    assert payload["to"] == "+966501234567"
    template = payload["template"]
    assert template["name"] == "akeed_cod_verification"
    assert template["language"] == {"code": "ar"}
    body, confirm, cancel = template["components"]
    assert [p["text"] for p in body["parameters"]] == ["#1042", "249.00 SAR"]
    assert confirm["index"] == 0
    assert confirm["parameters"][0]["payload"] == "confirm_3f1c9a4e-0000-4000-8000-000000000001"
    assert cancel["index"] == 1
    assert cancel["parameters"][0]["payload"] == "cancel_3f1c9a4e-0000-4000-8000-000000000001"


def test_send_without_message_id_returns_none(
    configured_gateway, mocked_http_client, response_factory
):
    _, mock_client = mocked_http_client
    mock_client.post.return_value = response_factory({"messaging_product": "whatsapp"})

    result = configured_gateway.send_verification_message("+201001234567", "7", "50.00 EGP", "v-2")

    assert result.provider_message_id is None


def test_send_raises_value_error_on_api_error(
    configured_gateway, mocked_http_client, response_factory
):
    _, mock_client = mocked_http_client
    mock_client.post.return_value = response_factory(
        {"error": {"message": "(#131030) Recipient phone number not in allowed list"}},
        status_code=400,
    )

    with pytest.raises(ValueError, match="131030"):
        configured_gateway.send_verification_message("+966501234567", "1", "1.00 SAR", "v-3")
