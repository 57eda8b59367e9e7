"""FastAPI routes for the Notifications domain.

Thin adapters that translate HTTP requests into domain commands.
No business logic — just schema→command→response translation.

Fixed paths (/templates, /endpoints, /maintenance, /stats, channel
shortcuts) are declared before the /{notification_id} routes.
"""

import json
from datetime import datetime

from fastapi import APIRouter, Header, Query
from notifications.api.schemas import (
    CancelNotificationRequest,
    ChannelDeliveryResponse,
    ChannelShortcutRequest,
    CountResponse,
    CreateNotificationRequest,
    CreateTemplateRequest,
    DeliveryReceiptRequest,
    DispatchSummaryResponse,
    EmailShortcutRequest,
    EndpointRegisteredResponse,
    EngagementRequest,
    EngagementResponse,
    ExpireNotificationsRequest,
    InAppShortcutRequest,
    MaintenanceRequest,
    NotificationCreatedResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationStatusResponse,
    NotificationSummaryResponse,
    PushShortcutRequest,
    RegisterEndpointRequest,
    RenderedTemplateResponse,
    SendNotificationRequest,
    SmsShortcutRequest,
    StatsResponse,
    StatusResponse,
    SweepResponse,
    TemplateIdResponse,
    TemplateListResponse,
    TemplatePreviewRequest,
    TemplateResponse,
    UnregisterEndpointRequest,
    UpdateNotificationRequest,
    UpdateTemplateRequest,
)
from notifications.endpoint.registration import (
    CleanupInvalidEndpoints,
    RegisterEndpoint,
    UnregisterEndpoint,
)
from notifications.notification.cancellation import CancelNotification
from notifications.notification.creation import CreateNotification
from notifications.notification.dispatch import SendNotification
from notifications.notification.engagement import RecordEngagement
from notifications.notification.expiry import ExpireNotifications
from notifications.notification.management import (
    ArchiveNotification,
    DeleteNotification,
    UpdateNotification,
)
from notifications.notification.notification import Channel, Notification
from notifications.notification.queries import search_notifications
from notifications.notification.receipts import RecordDeliveryReceipt
from notifications.notification.retry import RetryNotification
from notifications.notification.scheduler import RunScheduledSweep
from notifications.notification.statistics import (
    DEFAULT_TIMEFRAME,
    channel_performance,
    notification_stats,
)
from notifications.template.management import (
    CreateTemplate,
    DeleteTemplate,
    SetTemplateActive,
    UpdateTemplate,
)
from notifications.template.queries import list_templates, preview_template
from notifications.template.template import NotificationTemplate
from protean.utils.globals import current_domain

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _dumps(value):
    return json.dumps(value) if value is not None else None


def _dumps_model(model):
    return json.dumps(model.model_dump(mode="json", exclude_none=True)) if model is not None else None


def _iso(value):
    return value.isoformat() if value else None


def _notification_response(notification: Notification) -> NotificationResponse:
    engagement = notification.engagement_metrics()
    return NotificationResponse(
        notification_id=str(notification.id),
        title=notification.title,
        body=notification.body,
        notification_type=notification.notification_type,
        channels=notification.get_channels(),
        fallback_channels=notification.get_fallback_channels(),
        priority=notification.priority,
        status=notification.status,
        overall_status=notification.overall_status(),
        template_id=str(notification.template_id) if notification.template_id else None,
        target_users=notification.get_target_users(),
        target_role=notification.target_role,
        target_criteria=notification.get_target_criteria(),
        scheduled_time=_iso(notification.scheduled_time),
        recipient_count=notification.recipient_count or 0,
        delivery_rate=notification.delivery_rate(),
        deliveries=[ChannelDeliveryResponse(**entry) for entry in channel_performance(notification)],
        engagement=EngagementResponse(
            opened=bool(engagement.opened),
            opened_at=_iso(engagement.opened_at),
            clicked=bool(engagement.clicked),
            clicked_at=_iso(engagement.clicked_at),
            action_taken=bool(engagement.action_taken),
            action_taken_at=_iso(engagement.action_taken_at),
            action=engagement.action,
            read_duration=engagement.read_duration,
            engagement_channel=engagement.engagement_channel,
            suspect=bool(engagement.suspect),
        ),
        created_by=notification.created_by,
        is_archived=bool(notification.is_archived),
        tags=notification.get_tags(),
        created_at=_iso(notification.created_at),
        dispatched_at=_iso(notification.dispatched_at),
    )


def _created_response(notification_id) -> NotificationCreatedResponse:
    notification = current_domain.repository_for(Notification).get(notification_id)
    return NotificationCreatedResponse(
        notification_id=str(notification.id),
        status=notification.status,
        overall_status=notification.overall_status(),
        channels=notification.delivery_statuses(),
    )


def _template_response(template: NotificationTemplate) -> TemplateResponse:
    return TemplateResponse(
        template_id=str(template.id),
        name=template.name,
        description=template.description,
        category=template.category,
        channel_type=template.channel_type,
        subject=template.subject,
        content=template.content,
        variables=template.get_variables(),
        default_values=template.get_default_values(),
        language=template.language,
        is_active=bool(template.is_active),
        version=template.version,
        usage_count=template.usage_count or 0,
        last_used_at=_iso(template.last_used_at),
        created_by=template.created_by,
        created_at=_iso(template.created_at),
    )


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------
@router.post("/templates", status_code=201, response_model=TemplateIdResponse)
async def create_template(body: CreateTemplateRequest, x_user_id: str | None = Header(default=None)) -> TemplateIdResponse:
    command = CreateTemplate(
        name=body.name,
        channel_type=body.channel_type,
        content=body.content,
        subject=body.subject,
        description=body.description,
        category=body.category,
        variables=_dumps(body.variables),
        default_values=_dumps(body.default_values),
        language=body.language,
        email_settings=_dumps_model(body.email_settings),
        sms_settings=_dumps_model(body.sms_settings),
        push_settings=_dumps_model(body.push_settings),
        created_by=body.created_by or x_user_id,
    )
    template_id = current_domain.process(command, asynchronous=False)
    return TemplateIdResponse(template_id=template_id)


@router.get("/templates", response_model=TemplateListResponse)
async def get_templates(
    category: str | None = None,
    channel_type: str | None = None,
    language: str | None = None,
    active_only: bool = False,
    search: str | None = None,
) -> TemplateListResponse:
    templates = list_templates(
        category=category,
        channel_type=channel_type,
        language=language,
        active_only=active_only,
        search=search,
    )
    return TemplateListResponse(templates=[_template_response(t) for t in templates])


@router.get("/templates/{template_id}", response_model=TemplateResponse)
async def get_template(template_id: str) -> TemplateResponse:
    template = current_domain.repository_for(NotificationTemplate).get(template_id)
    return _template_response(template)


@router.put("/templates/{template_id}", response_model=TemplateResponse)
async def update_template(template_id: str, body: UpdateTemplateRequest) -> TemplateResponse:
    fields = body.model_dump(exclude={"is_active"}, exclude_none=True)
    if fields:
        command = UpdateTemplate(
            template_id=template_id,
            name=body.name,
            description=body.description,
            category=body.category,
            subject=body.subject,
            content=body.content,
            variables=_dumps(body.variables),
            default_values=_dumps(body.default_values),
            language=body.language,
            email_settings=_dumps_model(body.email_settings),
            sms_settings=_dumps_model(body.sms_settings),
            push_settings=_dumps_model(body.push_settings),
        )
        current_domain.process(command, asynchronous=False)

    if body.is_active is not None:
        current_domain.process(
            SetTemplateActive(template_id=template_id, is_active=body.is_active),
            asynchronous=False,
        )

    template = current_domain.repository_for(NotificationTemplate).get(template_id)
    return _template_response(template)


@router.delete("/templates/{template_id}", response_model=StatusResponse)
async def delete_template(template_id: str) -> StatusResponse:
    current_domain.process(DeleteTemplate(template_id=template_id), asynchronous=False)
    return StatusResponse()


@router.post("/templates/{template_id}/test", response_model=RenderedTemplateResponse)
async def test_template(template_id: str, body: TemplatePreviewRequest) -> RenderedTemplateResponse:
    """Render a template with sample variables without counting it as a use."""
    rendered = preview_template(template_id, body.variables)
    return RenderedTemplateResponse(subject=rendered.subject, body=rendered.body)


# ---------------------------------------------------------------------------
# Push endpoints
# ---------------------------------------------------------------------------
@router.post("/endpoints", status_code=201, response_model=EndpointRegisteredResponse)
async def register_endpoint(body: RegisterEndpointRequest, x_user_id: str = Header(...)) -> EndpointRegisteredResponse:
    command = RegisterEndpoint(
        user_id=x_user_id,
        token=body.token,
        platform=body.platform,
        device_name=body.device_name,
        device_model=body.device_model,
        os_version=body.os_version,
        app_version=body.app_version,
    )
    registry_id = current_domain.process(command, asynchronous=False)
    return EndpointRegisteredResponse(registry_id=registry_id)


@router.delete("/endpoints", response_model=CountResponse)
async def unregister_endpoint(body: UnregisterEndpointRequest, x_user_id: str = Header(...)) -> CountResponse:
    command = UnregisterEndpoint(user_id=x_user_id, token=body.token, all_endpoints=body.all_endpoints)
    removed = current_domain.process(command, asynchronous=False)
    return CountResponse(count=removed or 0)


# ---------------------------------------------------------------------------
# Maintenance: periodic background job endpoints
# ---------------------------------------------------------------------------
@router.post("/maintenance/process-scheduled", response_model=SweepResponse)
async def process_scheduled_notifications(body: MaintenanceRequest | None = None) -> SweepResponse:
    """Recover stuck jobs, dispatch due scheduled notifications and re-drive due retries.

    Designed to be called periodically by an external scheduler (e.g., every minute).
    Idempotent: claimed or finished notifications are skipped.
    """
    command = RunScheduledSweep(as_of=body.as_of if body else None)
    result = current_domain.process(command, asynchronous=False)
    return SweepResponse(**result)


@router.post("/maintenance/cleanup-endpoints", response_model=CountResponse)
async def cleanup_endpoints(x_user_id: str | None = Header(default=None)) -> CountResponse:
    removed = current_domain.process(CleanupInvalidEndpoints(requested_by=x_user_id or "api"), asynchronous=False)
    return CountResponse(count=removed)


@router.post("/maintenance/expire", response_model=CountResponse)
async def expire_notifications(body: ExpireNotificationsRequest | None = None) -> CountResponse:
    command = ExpireNotifications(
        as_of=body.as_of if body else None,
        retention_days=body.retention_days if body else None,
    )
    expired = current_domain.process(command, asynchronous=False)
    return CountResponse(count=expired)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(timeframe: str = DEFAULT_TIMEFRAME) -> StatsResponse:
    return StatsResponse(**notification_stats(timeframe))


# ---------------------------------------------------------------------------
# Channel shortcuts: create and send on a single channel
# ---------------------------------------------------------------------------
def _shortcut(channel: str, body: ChannelShortcutRequest, x_user_id: str | None, **content) -> NotificationCreatedResponse:
    title, text = body.title, body.body
    if body.template_id and (title is None or text is None):
        rendered = preview_template(body.template_id, body.template_variables)
        title = title or rendered.subject or current_domain.repository_for(NotificationTemplate).get(body.template_id).name
        text = text or rendered.body

    overrides = {key: value for key, value in content.items() if value is not None}
    content_override = {f"{channel}_content": json.dumps(overrides, default=str)} if overrides else {}
    command = CreateNotification(
        title=title,
        body=text,
        channels=json.dumps([channel]),
        created_by=body.created_by or x_user_id,
        notification_type=body.notification_type,
        priority=body.priority,
        data=_dumps(body.data),
        template_id=body.template_id,
        template_variables=_dumps(body.template_variables),
        target_users=_dumps(body.target_users),
        target_role=body.target_role,
        target_criteria=_dumps(body.target_criteria),
        scheduled_time=body.scheduled_time,
        **content_override,
    )
    notification_id = current_domain.process(command, asynchronous=False)
    return _created_response(notification_id)


@router.post("/email", status_code=201, response_model=NotificationCreatedResponse)
async def send_email(body: EmailShortcutRequest, x_user_id: str | None = Header(default=None)) -> NotificationCreatedResponse:
    return _shortcut(
        Channel.EMAIL.value,
        body,
        x_user_id,
        html_body=body.html_body,
        from_address=body.from_address,
        reply_to=body.reply_to,
    )


@router.post("/sms", status_code=201, response_model=NotificationCreatedResponse)
async def send_sms(body: SmsShortcutRequest, x_user_id: str | None = Header(default=None)) -> NotificationCreatedResponse:
    return _shortcut(Channel.SMS.value, body, x_user_id, sender_id=body.sender_id)


@router.post("/push", status_code=201, response_model=NotificationCreatedResponse)
async def send_push(body: PushShortcutRequest, x_user_id: str | None = Header(default=None)) -> NotificationCreatedResponse:
    return _shortcut(
        Channel.PUSH.value,
        body,
        x_user_id,
        sound=body.sound,
        channel_id=body.channel_id,
        priority=body.push_priority,
    )


@router.post("/in-app", status_code=201, response_model=NotificationCreatedResponse)
async def send_in_app(body: InAppShortcutRequest, x_user_id: str | None = Header(default=None)) -> NotificationCreatedResponse:
    return _shortcut(
        Channel.IN_APP.value,
        body,
        x_user_id,
        action=body.action,
        expires_at=body.expires_at.isoformat() if body.expires_at else None,
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@router.post("", status_code=201, response_model=NotificationCreatedResponse)
async def create_notification(
    body: CreateNotificationRequest,
    x_user_id: str | None = Header(default=None),
) -> NotificationCreatedResponse:
    """Create a notification; immediate ones are dispatched before the response returns."""
    command = CreateNotification(
        title=body.title,
        body=body.body,
        channels=json.dumps(body.channels),
        created_by=body.created_by or x_user_id,
        notification_type=body.notification_type,
        data=_dumps(body.data),
        template_id=body.template_id,
        template_variables=_dumps(body.template_variables),
        email_content=_dumps_model(body.email_content),
        sms_content=_dumps_model(body.sms_content),
        push_content=_dumps_model(body.push_content),
        in_app_content=_dumps_model(body.in_app_content),
        target_users=_dumps(body.target_users),
        target_role=body.target_role,
        target_criteria=_dumps(body.target_criteria),
        scheduled_time=body.scheduled_time,
        time_zone=body.time_zone,
        delivery_window_start=body.delivery_window_start,
        delivery_window_end=body.delivery_window_end,
        priority=body.priority,
        routing_rules=_dumps(body.routing_rules),
        fallback_channels=_dumps(body.fallback_channels),
        require_confirmation=body.require_confirmation,
        max_retries=body.max_retries,
        tags=_dumps(body.tags),
        notes=body.notes,
    )
    notification_id = current_domain.process(command, asynchronous=False)
    return _created_response(notification_id)


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    status: str | None = None,
    notification_type: str | None = Query(None, alias="type"),
    channel: str | None = None,
    priority: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> NotificationListResponse:
    results, total = search_notifications(
        status=status,
        notification_type=notification_type,
        channel=channel,
        priority=priority,
        start_date=datetime.fromisoformat(start_date) if start_date else None,
        end_date=datetime.fromisoformat(end_date) if end_date else None,
        search=search,
        page=page,
        limit=limit,
    )
    return NotificationListResponse(
        notifications=[
            NotificationSummaryResponse(
                notification_id=str(n.id),
                title=n.title,
                notification_type=n.notification_type,
                channels=n.get_channels(),
                priority=n.priority,
                status=n.status,
                overall_status=n.overall_status(),
                created_at=_iso(n.created_at),
            )
            for n in results
        ],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(notification_id: str) -> NotificationResponse:
    notification = current_domain.repository_for(Notification).get(notification_id)
    return _notification_response(notification)


@router.get("/{notification_id}/status", response_model=NotificationStatusResponse)
async def get_notification_status(notification_id: str) -> NotificationStatusResponse:
    notification = current_domain.repository_for(Notification).get(notification_id)
    return NotificationStatusResponse(
        notification_id=str(notification.id),
        status=notification.status,
        overall_status=notification.overall_status(),
        delivery_rate=notification.delivery_rate(),
        recipient_count=notification.recipient_count or 0,
        channels=[ChannelDeliveryResponse(**entry) for entry in channel_performance(notification)],
    )


@router.post("/{notification_id}/send", response_model=DispatchSummaryResponse)
async def send_notification(
    notification_id: str,
    body: SendNotificationRequest | None = None,
    x_user_id: str | None = Header(default=None),
) -> DispatchSummaryResponse:
    command = SendNotification(
        notification_id=notification_id,
        sent_by=(body.sent_by if body else None) or x_user_id,
    )
    summary = current_domain.process(command, asynchronous=False)
    return DispatchSummaryResponse(**summary)


@router.put("/{notification_id}", response_model=NotificationResponse)
async def update_notification(notification_id: str, body: UpdateNotificationRequest) -> NotificationResponse:
    command = UpdateNotification(
        notification_id=notification_id,
        title=body.title,
        body=body.body,
        notification_type=body.notification_type,
        data=_dumps(body.data),
        channels=_dumps(body.channels),
        fallback_channels=_dumps(body.fallback_channels),
        routing_rules=_dumps(body.routing_rules),
        template_id=body.template_id,
        template_variables=_dumps(body.template_variables),
        target_users=_dumps(body.target_users),
        target_role=body.target_role,
        target_criteria=_dumps(body.target_criteria),
        scheduled_time=body.scheduled_time,
        clear_schedule=body.clear_schedule,
        priority=body.priority,
        tags=_dumps(body.tags),
        notes=body.notes,
    )
    current_domain.process(command, asynchronous=False)
    notification = current_domain.repository_for(Notification).get(notification_id)
    return _notification_response(notification)


@router.delete("/{notification_id}", response_model=StatusResponse)
async def delete_notification(notification_id: str) -> StatusResponse:
    current_domain.process(DeleteNotification(notification_id=notification_id), asynchronous=False)
    return StatusResponse()


@router.put("/{notification_id}/cancel", response_model=StatusResponse)
async def cancel_notification(notification_id: str, body: CancelNotificationRequest) -> StatusResponse:
    """Cancel a draft or scheduled notification."""
    command = CancelNotification(
        notification_id=notification_id,
        reason=body.reason,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@router.post("/{notification_id}/retry", response_model=DispatchSummaryResponse)
async def retry_notification(notification_id: str) -> DispatchSummaryResponse:
    """Retry the failed channels of a notification now."""
    summary = current_domain.process(RetryNotification(notification_id=notification_id), asynchronous=False)
    return DispatchSummaryResponse(**summary)


@router.post("/{notification_id}/archive", response_model=StatusResponse)
async def archive_notification(notification_id: str) -> StatusResponse:
    current_domain.process(ArchiveNotification(notification_id=notification_id), asynchronous=False)
    return StatusResponse()


@router.post("/{notification_id}/engagement", response_model=StatusResponse)
async def record_engagement(notification_id: str, body: EngagementRequest) -> StatusResponse:
    command = RecordEngagement(
        notification_id=notification_id,
        channel=body.channel,
        event=body.event,
        action=body.action,
        read_duration=body.read_duration,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@router.post("/{notification_id}/receipts", response_model=StatusResponse)
async def record_receipt(notification_id: str, body: DeliveryReceiptRequest) -> StatusResponse:
    command = RecordDeliveryReceipt(
        notification_id=notification_id,
        channel=body.channel,
        message_id=body.message_id,
    )
    applied = current_domain.process(command, asynchronous=False)
    return StatusResponse(status="ok" if applied else "ignored")
