from .lead import (
    PipelineStageRecord,
    LeadRecord,
    ExistingLead,
    DuplicateCheckResult,
    LeadForm,
    CsvRow,
    RowValidation,
    ImportResult,
    SaveLeadResult,
    SendFirstMessageResult,
)
from .campaign import (
    CampaignMessage,
    CampaignTemplate,
    TagCampaignForm,
    TagCampaignMessageRecord,
    TagCampaignRecord,
    TriggerResult,
    TagWebhookPayload,
)
from .conversation import (
    ConversationRecord,
    MessageRecord,
    SmsWebhookPayload,
    CallWebhookPayload,
    MessageMetrics,
    VolumePoint,
    FunnelStage,
    DashboardStats,
    UserForm,
    UserRecord,
    PreferencesRecord,
)

__all__ = [
    "PipelineStageRecord", "LeadRecord", "ExistingLead", "DuplicateCheckResult",
    "LeadForm", "CsvRow", "RowValidation", "ImportResult", "SaveLeadResult",
    "SendFirstMessageResult",
    "CampaignMessage", "CampaignTemplate", "TagCampaignForm", "TagCampaignMessageRecord",
    "TagCampaignRecord", "TriggerResult", "TagWebhookPayload",
    "ConversationRecord", "MessageRecord", "SmsWebhookPayload", "CallWebhookPayload",
    "MessageMetrics", "VolumePoint", "FunnelStage", "DashboardStats",
    "UserForm", "UserRecord", "PreferencesRecord",
]
