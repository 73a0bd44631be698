"""Lead intake, CSV import and pipeline schemas."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PipelineStageRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    color: str
    order_position: int


class LeadRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    lead_source: Optional[str] = None
    status: str
    owner_id: Optional[UUID] = None
    pipeline_stage_id: UUID
    created_at: datetime
    updated_at: datetime


class ExistingLead(BaseModel):
    """The conflicting record shown when a manual entry collides on phone."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None
    status: str
    owner_id: Optional[UUID] = None
    created_at: datetime


class DuplicateCheckResult(BaseModel):
    is_duplicate: bool
    existing_lead: Optional[ExistingLead] = None


class LeadForm(BaseModel):
    """Manual entry / edit form. Blank strings are treated as missing."""

    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    notes: str = ""
    pipeline_stage_id: Optional[UUID] = None
    tags: List[str] = Field(default_factory=list)


class CsvRow(BaseModel):
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    notes: Optional[str] = None


class RowValidation(BaseModel):
    row: int  # 1-based data row number
    data: CsvRow
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


class ImportResult(BaseModel):
    success_count: int = 0
    duplicate_count: int = 0
    error_count: int = 0
    total: int = 0

    def summary(self) -> str:
        parts = []
        if self.success_count:
            parts.append(f"{_plural(self.success_count, 'lead')} imported")
        if self.duplicate_count:
            parts.append(f"{_plural(self.duplicate_count, 'duplicate')} skipped")
        if self.error_count:
            parts.append(_plural(self.error_count, "error"))
        text = ", ".join(parts)
        if self.success_count:
            return f"CSV Import Complete: {text}"
        if self.duplicate_count and not self.error_count:
            return f"All leads were duplicates ({self.duplicate_count} skipped)"
        return f"Import failed: {text}"


class SaveLeadResult(BaseModel):
    lead_id: UUID
    created: bool
    status: str
    added_tags: List[str] = Field(default_factory=list)
    webhooks_sent: int = 0
    webhooks_failed: int = 0

    def summary(self) -> str:
        verb = "Lead created" if self.created else "Lead updated"
        if self.webhooks_sent:
            noun = "campaign" if self.webhooks_sent == 1 else "campaigns"
            text = f"{verb}! Triggering {self.webhooks_sent} {noun}..."
        else:
            text = f"{verb} successfully"
        if self.webhooks_failed:
            text += f" {self.webhooks_failed} will be retried by the backup system."
        return text


class SendFirstMessageResult(BaseModel):
    updated: int = 0
    webhooks_sent: int = 0
    webhooks_failed: int = 0
    skipped: int = 0

    def summary(self) -> str:
        if self.skipped and not self.updated:
            return (
                f"{_plural(self.skipped, 'lead')} already tagged with "
                "'Initial_Message'. No messages sent."
            )
        if self.skipped:
            return (
                f"Sending message to {_plural(self.updated, 'lead')}. "
                f"{self.skipped} already tagged (skipped)."
            )
        if not self.webhooks_failed:
            return f"Sending message to {_plural(self.updated, 'lead')}..."
        if self.webhooks_sent:
            return (
                f"Updated {self.updated} lead(s). {self.webhooks_sent} messages queued, "
                f"{self.webhooks_failed} will be sent by backup system."
            )
        return (
            f"Updated {self.updated} lead(s). Messages will be sent by backup system shortly."
        )
