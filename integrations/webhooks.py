"""Outbound webhooks to the SMS/voice automation workflows.

Every call is best-effort: failures are logged and reported in the returned
dict as ``{"sent": False, "error": ...}``, never raised. The caller's
database write has already been committed by the time these run.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import requests

import config
from schemas.campaign import TagWebhookPayload
from schemas.conversation import CallWebhookPayload, SmsWebhookPayload

logger = logging.getLogger(__name__)


def _headers() -> Dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Auth-Token": config.webhook_token(),
    }


def _post(url: str, payload: Dict[str, Any], label: str) -> Dict[str, Any]:
    if not url or not config.webhook_token():
        logger.warning("%s webhook not configured", label)
        return {"sent": False, "error": "webhook not configured"}
    try:
        resp = requests.post(
            url,
            headers=_headers(),
            json=payload,
            timeout=config.webhook_timeout(),
        )
        resp.raise_for_status()
        return {"sent": True, "status_code": resp.status_code}
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        logger.error("%s webhook failed: HTTP %s", label, status)
        return {"sent": False, "status_code": status, "error": str(exc)}
    except requests.RequestException as exc:
        logger.error("%s webhook network error: %s", label, exc)
        return {"sent": False, "error": str(exc)}


def trigger_campaign_webhook(
    lead_id: str,
    first_name: str,
    last_name: str,
    phone: str,
    tag: str,
    tags: Iterable[str],
    source: str = "tag_added",
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Notify the automation platform that a campaign tag was added to a lead.

    Args:
        lead_id: Lead UUID as a string.
        first_name, last_name, phone: Lead identity (phone in E.164).
        tag: The specific campaign tag that was added.
        tags: The lead's full tag list after the write.
        source: "tag_added" for lead create/edit, "bulk_first_message" for
            the bulk initial-message action.

    Returns:
        Dict with 'sent' (bool) and 'tag'; 'error' on failure.
    """
    payload = TagWebhookPayload(
        source=source,
        lead_id=str(lead_id),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        tag=tag,
        tags=list(tags),
        timestamp=timestamp or datetime.now(timezone.utc),
    )
    result = _post(
        config.initial_message_webhook(),
        payload.model_dump(mode="json"),
        f"Campaign ({tag})",
    )
    if result["sent"]:
        logger.info("Webhook triggered for tag: %s", tag)
    result["tag"] = tag
    return result


def send_sms_webhook(
    conversation_id: str, content: str, sender: str, recipient: str, sent_by: str
) -> Dict[str, Any]:
    """Ask the automation platform to deliver a manually written SMS."""
    payload = SmsWebhookPayload(
        conversation_id=str(conversation_id),
        content=content,
        sender=sender,
        recipient=recipient,
        sent_by=str(sent_by),
    )
    return _post(config.send_sms_webhook(), payload.model_dump(), "Send SMS")


def initiate_call_webhook(
    lead_id: str,
    agent_id: str,
    agent_phone: str,
    lead_phone: str,
    lead_name: str,
    conversation_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Bridge a call between an agent's phone and a lead via the voice workflow."""
    payload = CallWebhookPayload(
        lead_id=str(lead_id),
        agent_id=str(agent_id),
        conversation_id=str(conversation_id) if conversation_id else None,
        agent_phone=agent_phone,
        lead_phone=lead_phone,
        lead_name=lead_name,
    )
    return _post(config.call_webhook(), payload.model_dump(), "Call")
