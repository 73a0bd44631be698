from .webhooks import trigger_campaign_webhook, send_sms_webhook, initiate_call_webhook
from .admin_functions import create_user, delete_user

__all__ = [
    "trigger_campaign_webhook", "send_sms_webhook", "initiate_call_webhook",
    "create_user", "delete_user",
]
