"""Privileged user management via the hosted backend's serverless functions.

Both functions answer with a JSON envelope:
    {"success": true, ...}  or  {"error": "..."}
This module always returns a dict with 'success' and, on failure, 'error'.
"""
import logging
from typing import Any, Dict

import requests

import config
from schemas.conversation import UserForm

logger = logging.getLogger(__name__)

CREATE_USER_REQUIRED = ("email", "password", "full_name")


def _function_url(name: str) -> str:
    return f"{config.supabase_url()}/functions/v1/{name}"


def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {config.service_role_key()}",
        "Content-Type": "application/json",
    }


def _invoke(name: str, body: Dict[str, Any], fallback_error: str) -> Dict[str, Any]:
    if not config.supabase_url() or not config.service_role_key():
        return {"success": False, "error": "admin functions not configured"}
    try:
        resp = requests.post(_function_url(name), headers=_headers(), json=body, timeout=30)
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not resp.ok or not data.get("success"):
            error = data.get("error") or f"{fallback_error} (HTTP {resp.status_code})"
            logger.error("%s failed: %s", name, error)
            return {"success": False, "error": error}
        return data
    except requests.RequestException as exc:
        logger.error("%s network error: %s", name, exc)
        return {"success": False, "error": str(exc)}


def create_user(form: UserForm) -> Dict[str, Any]:
    """Create an auth account, profile row and role in one remote call.

    Returns:
        Envelope dict; on success 'user' holds the created profile.
    """
    missing = [f for f in CREATE_USER_REQUIRED if not getattr(form, f).strip()]
    if missing:
        return {
            "success": False,
            "error": "Missing required fields: " + ", ".join(CREATE_USER_REQUIRED),
        }
    body = {
        "email": form.email.strip(),
        "password": form.password,
        "full_name": form.full_name.strip(),
        "phone_number": (form.phone_number or "").strip() or None,
        "twilio_phone_number": (form.twilio_phone_number or "").strip() or None,
        "designation": (form.designation or "").strip() or None,
        "role": form.role,
        "receive_sms_notifications": form.receive_sms_notifications,
        "is_active": form.is_active,
    }
    return _invoke("create-user", body, "Failed to create user")


def delete_user(user_id: str) -> Dict[str, Any]:
    """Delete a user remotely: role row, lead ownership, profile, auth account."""
    if not user_id:
        return {"success": False, "error": "Missing required field: userId"}
    return _invoke("delete-user", {"userId": str(user_id)}, "Failed to delete user")
