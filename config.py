"""Runtime configuration for the Dealerline CRM service layer.

All settings come from the process environment; a local .env file is
loaded first so developers can copy .env.example and go.

Usage:
    import config
    url = config.initial_message_webhook()
"""
import os

from dotenv import load_dotenv

load_dotenv()

# Reserved tag that drives the day-1 outbound message sequence
INITIAL_MESSAGE_TAG = "Initial_Message"

CONTACTED_STATUS = "contacted"
NEW_STATUS = "new"


def database_url() -> str:
    """Return DATABASE_URL or raise with setup guidance."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL environment variable is not set. "
            "Copy .env.example to .env and set your database credentials."
        )
    return url


def initial_message_webhook() -> str:
    return os.environ.get("N8N_INITIAL_MESSAGE_WEBHOOK", "").strip()


def send_sms_webhook() -> str:
    return os.environ.get("N8N_SEND_SMS_WEBHOOK", "").strip()


def call_webhook() -> str:
    return os.environ.get("N8N_CALL_WEBHOOK", "").strip()


def webhook_token() -> str:
    return os.environ.get("N8N_WEBHOOK_TOKEN", "").strip()


def webhook_timeout() -> int:
    return int(os.environ.get("WEBHOOK_TIMEOUT", "10"))


def supabase_url() -> str:
    return os.environ.get("SUPABASE_URL", "").rstrip("/")


def service_role_key() -> str:
    return os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")


def twilio_phone_number() -> str:
    return os.environ.get("TWILIO_PHONE_NUMBER", "")


def realtime_channel() -> str:
    """pg_notify channel the change triggers publish on."""
    return os.environ.get("REALTIME_CHANNEL", "table_changes")
