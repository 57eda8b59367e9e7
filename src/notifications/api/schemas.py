"""Pydantic request/response models for the Notifications API.

API schemas are separate from Protean commands (anti-corruption pattern).
Required domain fields stay optional here so that missing values are
reported by the domain's own validation (400) rather than by FastAPI (422).
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Channel content overrides
# ---------------------------------------------------------------------------
class EmailContentModel(BaseModel):
    subject: str | None = None
    html_body: str | None = None
    text_body: str | None = None
    from_address: str | None = None
    reply_to: str | None = None


class SmsContentModel(BaseModel):
    message: str | None = None
    sender_id: str | None = None


class PushContentModel(BaseModel):
    title: str | None = None
    body: str | None = None
    data: dict | None = None
    sound: str | None = None
    channel_id: str | None = None
    priority: str | None = None


class InAppContentModel(BaseModel):
    message: str | None = None
    action: str | None = None
    priority: str | None = None
    expires_at: datetime | None = None


# ---------------------------------------------------------------------------
# Notification requests
# ---------------------------------------------------------------------------
class TargetingFields(BaseModel):
    target_users: list[str] | None = None
    target_role: str | None = Field(None, examples=["customer"])
    target_criteria: dict | None = None


class CreateNotificationRequest(TargetingFields):
    title: str | None = None
    body: str | None = None
    channels: list[str] = Field(default_factory=list, examples=[["email", "push"]])
    notification_type: str | None = Field(None, examples=["order_status"])
    data: dict | None = None
    template_id: str | None = None
    template_variables: dict | None = None
    email_content: EmailContentModel | None = None
    sms_content: SmsContentModel | None = None
    push_content: PushContentModel | None = None
    in_app_content: InAppContentModel | None = None
    scheduled_time: datetime | None = None
    time_zone: str | None = None
    delivery_window_start: str | None = Field(None, pattern=r"^\d{2}:\d{2}$", examples=["09:00"])
    delivery_window_end: str | None = Field(None, pattern=r"^\d{2}:\d{2}$", examples=["18:00"])
    priority: str | None = Field(None, examples=["high"])
    routing_rules: dict | None = None
    fallback_channels: list[str] | None = None
    require_confirmation: bool = False
    max_retries: int | None = Field(None, ge=0)
    tags: list[str] | None = None
    notes: str | None = None
    created_by: str | None = None


class UpdateNotificationRequest(BaseModel):
    title: str | None = None
    body: str | None = None
    notification_type: str | None = None
    data: dict | None = None
    channels: list[str] | None = None
    fallback_channels: list[str] | None = None
    routing_rules: dict | None = None
    template_id: str | None = None
    template_variables: dict | None = None
    target_users: list[str] | None = None
    target_role: str | None = None
    target_criteria: dict | None = None
    scheduled_time: datetime | None = None
    clear_schedule: bool = False
    priority: str | None = None
    tags: list[str] | None = None
    notes: str | None = None


class SendNotificationRequest(BaseModel):
    sent_by: str | None = None


class CancelNotificationRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class EngagementRequest(BaseModel):
    channel: str = Field(..., examples=["push"])
    event: str = Field(..., examples=["opened"], description="opened | clicked | action_taken")
    action: str | None = None
    read_duration: int | None = Field(None, ge=0, description="Seconds spent reading")


class DeliveryReceiptRequest(BaseModel):
    channel: str = Field(..., examples=["email"])
    message_id: str | None = None


class ChannelShortcutRequest(TargetingFields):
    """Create-and-send on one channel, with inline content or a template."""

    title: str | None = None
    body: str | None = None
    template_id: str | None = None
    template_variables: dict | None = None
    notification_type: str | None = None
    priority: str | None = None
    scheduled_time: datetime | None = None
    data: dict | None = None
    created_by: str | None = None


class EmailShortcutRequest(ChannelShortcutRequest):
    html_body: str | None = None
    from_address: str | None = None
    reply_to: str | None = None


class SmsShortcutRequest(ChannelShortcutRequest):
    sender_id: str | None = None


class PushShortcutRequest(ChannelShortcutRequest):
    sound: str | None = None
    channel_id: str | None = None
    push_priority: str | None = Field(None, examples=["high"])


class InAppShortcutRequest(ChannelShortcutRequest):
    action: str | None = None
    expires_at: datetime | None = None


# ---------------------------------------------------------------------------
# Endpoint & maintenance requests
# ---------------------------------------------------------------------------
class RegisterEndpointRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=500)
    platform: str | None = Field(None, examples=["ios"])
    device_name: str | None = None
    device_model: str | None = None
    os_version: str | None = None
    app_version: str | None = None


class UnregisterEndpointRequest(BaseModel):
    token: str | None = None
    all_endpoints: bool = False


class MaintenanceRequest(BaseModel):
    as_of: datetime | None = None


class ExpireNotificationsRequest(MaintenanceRequest):
    retention_days: int | None = Field(None, ge=1)


# ---------------------------------------------------------------------------
# Template requests
# ---------------------------------------------------------------------------
class EmailSettingsModel(BaseModel):
    from_name: str | None = None
    from_email: str | None = None
    reply_to: str | None = None


class SmsSettingsModel(BaseModel):
    sender_id: str | None = None
    max_length: int = 160
    encoding: str = "gsm"


class PushSettingsModel(BaseModel):
    sound: str = "default"
    channel_id: str | None = None
    priority: str = "normal"


class CreateTemplateRequest(BaseModel):
    name: str | None = None
    channel_type: str | None = Field(None, examples=["email"])
    content: str | None = None
    subject: str | None = None
    description: str | None = None
    category: str | None = None
    variables: list[str] | None = None
    default_values: dict | None = None
    language: str | None = None
    email_settings: EmailSettingsModel | None = None
    sms_settings: SmsSettingsModel | None = None
    push_settings: PushSettingsModel | None = None
    created_by: str | None = None


class UpdateTemplateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    category: str | None = None
    subject: str | None = None
    content: str | None = None
    variables: list[str] | None = None
    default_values: dict | None = None
    language: str | None = None
    email_settings: EmailSettingsModel | None = None
    sms_settings: SmsSettingsModel | None = None
    push_settings: PushSettingsModel | None = None
    is_active: bool | None = None


class TemplatePreviewRequest(BaseModel):
    variables: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class NotificationCreatedResponse(BaseModel):
    notification_id: str
    status: str
    overall_status: str
    channels: dict[str, str]


class DispatchSummaryResponse(BaseModel):
    notification_id: str
    status: str
    overall_status: str
    channels: dict[str, str]
    recipient_count: int = 0
    attempted: int = 0


class ChannelDeliveryResponse(BaseModel):
    channel: str
    status: str
    successful: bool
    status_changed_at: str | None = None
    error: str | None = None
    retry_count: int = 0
    is_fallback: bool = False


class EngagementResponse(BaseModel):
    opened: bool = False
    opened_at: str | None = None
    clicked: bool = False
    clicked_at: str | None = None
    action_taken: bool = False
    action_taken_at: str | None = None
    action: str | None = None
    read_duration: int | None = None
    engagement_channel: str | None = None
    suspect: bool = False


class NotificationStatusResponse(BaseModel):
    notification_id: str
    status: str
    overall_status: str
    delivery_rate: float
    recipient_count: int
    channels: list[ChannelDeliveryResponse]


class NotificationResponse(BaseModel):
    notification_id: str
    title: str
    body: str
    notification_type: str
    channels: list[str]
    fallback_channels: list[str] = []
    priority: str
    status: str
    overall_status: str
    template_id: str | None = None
    target_users: list[str] = []
    target_role: str | None = None
    target_criteria: dict = {}
    scheduled_time: str | None = None
    recipient_count: int = 0
    delivery_rate: float = 0.0
    deliveries: list[ChannelDeliveryResponse] = []
    engagement: EngagementResponse | None = None
    created_by: str
    is_archived: bool = False
    tags: list[str] = []
    created_at: str | None = None
    dispatched_at: str | None = None


class NotificationSummaryResponse(BaseModel):
    notification_id: str
    title: str
    notification_type: str
    channels: list[str]
    priority: str
    status: str
    overall_status: str
    created_at: str | None = None


class NotificationListResponse(BaseModel):
    notifications: list[NotificationSummaryResponse]
    total: int
    page: int
    limit: int


class EndpointRegisteredResponse(BaseModel):
    registry_id: str


class CountResponse(BaseModel):
    status: str = "ok"
    count: int


class SweepResponse(BaseModel):
    status: str = "ok"
    recovered: int
    dispatched: int
    retried: int


class ChannelStatsResponse(BaseModel):
    total: int
    successful: int
    failed: int


class StatsResponse(BaseModel):
    timeframe: str
    since: str
    total: int
    by_status: dict[str, int]
    channels: dict[str, ChannelStatsResponse]
    delivery_rate: float
    engagement: dict[str, int]


class TemplateIdResponse(BaseModel):
    template_id: str


class TemplateResponse(BaseModel):
    template_id: str
    name: str
    description: str | None = None
    category: str
    channel_type: str
    subject: str | None = None
    content: str
    variables: list[str] = []
    default_values: dict = {}
    language: str
    is_active: bool
    version: int
    usage_count: int = 0
    last_used_at: str | None = None
    created_by: str | None = None
    created_at: str | None = None


class TemplateListResponse(BaseModel):
    templates: list[TemplateResponse]


class RenderedTemplateResponse(BaseModel):
    subject: str | None = None
    body: str
