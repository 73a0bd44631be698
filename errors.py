"""Exception types raised by the CRM service layer.

Webhook and network failures are deliberately absent: integrations report
those as data (``{"sent": False, "error": ...}``) instead of raising.
"""
from typing import Optional


class CRMError(Exception):
    """Base exception for CRM operation errors."""
    pass


class LeadValidationError(CRMError):
    """Blocking field-level validation failure, raised before any write."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(errors.values()))


class DuplicateLeadError(CRMError):
    """A lead with the same normalized phone already exists."""

    def __init__(self, existing_lead):
        self.existing_lead = existing_lead
        super().__init__(
            f"A lead with phone {existing_lead.phone} already exists "
            f"({existing_lead.first_name} {existing_lead.last_name})"
        )


class LeadNotFoundError(CRMError):
    pass


class StageNotFoundError(CRMError):
    pass


class ConversationNotFoundError(CRMError):
    pass


class MessageNotFoundError(CRMError):
    pass


class StageInUseError(CRMError):
    """Refused stage deletion: leads still reference the stage."""

    def __init__(self, stage_id, lead_count: Optional[int] = None):
        self.stage_id = stage_id
        self.lead_count = lead_count
        super().__init__(
            f"Cannot delete stage {stage_id}: {lead_count or 'some'} lead(s) still in it"
        )


class CampaignValidationError(CRMError):
    pass


class CsvFormatError(CRMError):
    """The uploaded file could not be read as a leads CSV."""
    pass


class AuthorizationError(CRMError):
    """Admin-only action attempted by a non-admin."""
    pass
