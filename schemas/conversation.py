"""Conversation, messaging, analytics and user management schemas."""
from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

HandoffFilter = Literal["all", "handoff", "ai"]
AppRole = Literal["admin", "user"]


class ConversationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lead_id: UUID
    status: str
    requires_human_handoff: bool
    ai_controlled: bool
    unread_count: int
    last_message_at: datetime


class MessageRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    conversation_id: UUID
    direction: Literal["inbound", "outbound"]
    content: str
    sender: str
    recipient: str
    status: str
    delivery_status: Optional[str] = None
    error_code: Optional[str] = None
    created_at: datetime


class SmsWebhookPayload(BaseModel):
    conversation_id: str
    content: str
    sender: str
    recipient: str
    sent_by: str


class CallWebhookPayload(BaseModel):
    lead_id: str
    agent_id: str
    conversation_id: Optional[str] = None
    agent_phone: str
    lead_phone: str
    lead_name: str


class MessageMetrics(BaseModel):
    total_sent: int
    total_received: int
    response_rate: str  # percentage with one decimal, e.g. "12.5"


class VolumePoint(BaseModel):
    date: date
    inbound: int = 0
    outbound: int = 0


class FunnelStage(BaseModel):
    name: str
    color: str
    count: int


class DashboardStats(BaseModel):
    today_messages: int
    unread_messages: int
    active_conversations: int
    new_leads_week: int
    handoff_conversations: int = 0


class UserForm(BaseModel):
    email: str = ""
    password: str = ""
    full_name: str = ""
    phone_number: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    designation: Optional[str] = None
    role: AppRole = "user"
    receive_sms_notifications: bool = True
    is_active: bool = True


class UserRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    full_name: str
    phone_number: Optional[str] = None
    is_active: bool
    receive_sms_notifications: bool
    role: AppRole = "user"


class PreferencesRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    visible_columns: List[str] = Field(default_factory=list)
    filters: dict = Field(default_factory=dict)
