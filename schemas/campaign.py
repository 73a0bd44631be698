"""Tag campaign, template catalog and webhook payload schemas."""
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CampaignMessage(BaseModel):
    day: int = Field(ge=0)
    content: str


class CampaignTemplate(BaseModel):
    name: str
    identifier: str
    messages: List[CampaignMessage] = Field(min_length=1)


class TagCampaignForm(BaseModel):
    name: str = ""
    tag: str = ""
    messages: List[CampaignMessage] = Field(default_factory=list)


class TagCampaignMessageRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    day_number: int
    sequence_order: int
    message_template: str


class TagCampaignRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tag: str
    name: str
    is_active: bool
    user_id: Optional[UUID] = None
    messages: List[TagCampaignMessageRecord] = Field(default_factory=list)

    @property
    def is_system(self) -> bool:
        return self.user_id is None


class TriggerResult(BaseModel):
    added_tags: List[str] = Field(default_factory=list)
    matched_tags: List[str] = Field(default_factory=list)
    webhooks_sent: int = 0
    webhooks_failed: int = 0


WebhookSource = Literal["tag_added", "bulk_first_message"]


class TagWebhookPayload(BaseModel):
    source: WebhookSource = "tag_added"
    lead_id: str
    first_name: str
    last_name: str
    phone: str
    tag: str
    tags: List[str]
    timestamp: datetime
