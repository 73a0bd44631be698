"""Unit tests for the webhook and admin-function HTTP wrappers."""
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from schemas.conversation import UserForm

WEBHOOK_MODULE = "integrations.webhooks"
ADMIN_MODULE = "integrations.admin_functions"


@pytest.fixture
def webhook_env(monkeypatch):
    monkeypatch.setenv("N8N_INITIAL_MESSAGE_WEBHOOK", "https://n8n.test/webhook/initial")
    monkeypatch.setenv("N8N_SEND_SMS_WEBHOOK", "https://n8n.test/webhook/sms")
    monkeypatch.setenv("N8N_CALL_WEBHOOK", "https://n8n.test/webhook/call")
    monkeypatch.setenv("N8N_WEBHOOK_TOKEN", "secret-token")


@pytest.fixture
def admin_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.test/")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")


def _ok_response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.json.return_value = body if body is not None else {}
    resp.raise_for_status.return_value = None
    return resp


class TestCampaignWebhook:
    @patch(f"{WEBHOOK_MODULE}.requests.post")
    def test_not_configured_never_calls_out(self, mock_post):
        from integrations.webhooks import trigger_campaign_webhook
        result = trigger_campaign_webhook("lead-1", "Ana", "Lee", "+16045551234", "VIP", ["VIP"])

        assert result == {"sent": False, "error": "webhook not configured", "tag": "VIP"}
        mock_post.assert_not_called()

    @patch(f"{WEBHOOK_MODULE}.requests.post")
    def test_token_alone_is_not_enough(self, mock_post, monkeypatch):
        monkeypatch.setenv("N8N_WEBHOOK_TOKEN", "secret-token")
        from integrations.webhooks import trigger_campaign_webhook
        result = trigger_campaign_webhook("lead-1", "Ana", "Lee", "+16045551234", "VIP", ["VIP"])
        assert result["sent"] is False
        mock_post.assert_not_called()

    @patch(f"{WEBHOOK_MODULE}.requests.post")
    def test_sends_payload_with_token_header(self, mock_post, webhook_env):
        mock_post.return_value = _ok_response()
        stamp = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

        from integrations.webhooks import trigger_campaign_webhook
        result = trigger_campaign_webhook(
            "lead-1", "Ana", "Lee", "+16045551234", "Initial_Message",
            ["VIP", "Initial_Message"], source="bulk_first_message", timestamp=stamp,
        )

        assert result == {"sent": True, "status_code": 200, "tag": "Initial_Message"}
        call = mock_post.call_args
        assert call.args[0] == "https://n8n.test/webhook/initial"
        assert call.kwargs["headers"]["X-Auth-Token"] == "secret-token"
        assert call.kwargs["headers"]["Content-Type"] == "application/json"
        assert call.kwargs["timeout"] == 10
        assert call.kwargs["json"] == {
            "source": "bulk_first_message",
            "lead_id": "lead-1",
            "first_name": "Ana",
            "last_name": "Lee",
            "phone": "+16045551234",
            "tag": "Initial_Message",
            "tags": ["VIP", "Initial_Message"],
            "timestamp": "2026-03-15T12:00:00Z",
        }

    @patch(f"{WEBHOOK_MODULE}.requests.post")
    def test_http_error_is_reported_not_raised(self, mock_post, webhook_env):
        resp = _ok_response(status_code=500)
        resp.raise_for_status.side_effect = requests.HTTPError("500 Server Error", response=resp)
        mock_post.return_value = resp

        from integrations.webhooks import trigger_campaign_webhook
        result = trigger_campaign_webhook("lead-1", "Ana", "Lee", "+16045551234", "VIP", ["VIP"])

        assert result["sent"] is False
        assert result["status_code"] == 500
        assert "500" in result["error"]

    @patch(f"{WEBHOOK_MODULE}.requests.post")
    def test_network_error_is_reported_not_raised(self, mock_post, webhook_env):
        mock_post.side_effect = requests.ConnectionError("connection refused")

        from integrations.webhooks import trigger_campaign_webhook
        result = trigger_campaign_webhook("lead-1", "Ana", "Lee", "+16045551234", "VIP", ["VIP"])

        assert result == {"sent": False, "error": "connection refused", "tag": "VIP"}


class TestSmsAndCallWebhooks:
    @patch(f"{WEBHOOK_MODULE}.requests.post")
    def test_sms_payload(self, mock_post, webhook_env):
        mock_post.return_value = _ok_response()
        from integrations.webhooks import send_sms_webhook
        result = send_sms_webhook("conv-1", "See you Saturday", "+16045550100", "+16045551234", "agent-1")

        assert result["sent"] is True
        assert mock_post.call_args.args[0] == "https://n8n.test/webhook/sms"
        assert mock_post.call_args.kwargs["json"] == {
            "conversation_id": "conv-1",
            "content": "See you Saturday",
            "sender": "+16045550100",
            "recipient": "+16045551234",
            "sent_by": "agent-1",
        }

    @patch(f"{WEBHOOK_MODULE}.requests.post")
    def test_call_payload_without_conversation(self, mock_post, webhook_env):
        mock_post.return_value = _ok_response()
        from integrations.webhooks import initiate_call_webhook
        initiate_call_webhook("lead-1", "agent-1", "+16045550000", "+16045551234", "Ana Lee")

        payload = mock_post.call_args.kwargs["json"]
        assert mock_post.call_args.args[0] == "https://n8n.test/webhook/call"
        assert payload["conversation_id"] is None
        assert payload["lead_name"] == "Ana Lee"


class TestAdminFunctions:
    @patch(f"{ADMIN_MODULE}.requests.post")
    def test_not_configured(self, mock_post):
        from integrations.admin_functions import delete_user
        assert delete_user("user-1") == {"success": False, "error": "admin functions not configured"}
        mock_post.assert_not_called()

    @patch(f"{ADMIN_MODULE}.requests.post")
    def test_create_user_requires_fields(self, mock_post, admin_env):
        from integrations.admin_functions import create_user
        result = create_user(UserForm(email="a@dealer.test", full_name="Ana"))

        assert result == {
            "success": False,
            "error": "Missing required fields: email, password, full_name",
        }
        mock_post.assert_not_called()

    @patch(f"{ADMIN_MODULE}.requests.post")
    def test_create_user_success(self, mock_post, admin_env):
        mock_post.return_value = _ok_response(body={"success": True, "user": {"id": "u-1"}})
        from integrations.admin_functions import create_user
        result = create_user(UserForm(
            email=" a@dealer.test ", password="pw123456", full_name="Ana", role="admin",
        ))

        assert result == {"success": True, "user": {"id": "u-1"}}
        call = mock_post.call_args
        assert call.args[0] == "https://project.supabase.test/functions/v1/create-user"
        assert call.kwargs["headers"]["Authorization"] == "Bearer service-key"
        assert call.kwargs["json"]["email"] == "a@dealer.test"
        assert call.kwargs["json"]["role"] == "admin"
        assert call.kwargs["json"]["phone_number"] is None

    @patch(f"{ADMIN_MODULE}.requests.post")
    def test_function_error_envelope(self, mock_post, admin_env):
        mock_post.return_value = _ok_response(status_code=403, body={"error": "Admins only"})
        from integrations.admin_functions import delete_user
        assert delete_user("user-1") == {"success": False, "error": "Admins only"}
        assert mock_post.call_args.kwargs["json"] == {"userId": "user-1"}

    @patch(f"{ADMIN_MODULE}.requests.post")
    def test_non_json_failure_uses_fallback_message(self, mock_post, admin_env):
        resp = _ok_response(status_code=502)
        resp.json.side_effect = ValueError("not json")
        mock_post.return_value = resp
        from integrations.admin_functions import delete_user
        assert delete_user("user-1") == {
            "success": False,
            "error": "Failed to delete user (HTTP 502)",
        }

    def test_delete_user_requires_id(self, admin_env):
        from integrations.admin_functions import delete_user
        assert delete_user("") == {"success": False, "error": "Missing required field: userId"}
