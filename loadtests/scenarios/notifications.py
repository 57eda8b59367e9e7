"""Notification load test scenarios.

Stateful SequentialTaskSet journeys covering immediate dispatch, scheduled
jobs, templates and push endpoint registration. Steps execute in order —
each depends on the previous step succeeding.

The server's user directory decides who actually receives anything; with
an empty directory every channel stays pending, which still exercises
creation, dispatch passes and the read side.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    endpoint_data,
    engagement_data,
    fallback_notification_data,
    notification_data,
    scheduled_notification_data,
    template_data,
    template_variables,
    user_id,
)
from loadtests.helpers.response import failure_message
from loadtests.helpers.state import DeviceState, NotificationState, TemplateState


class ImmediateNotificationJourney(SequentialTaskSet):
    """Create -> Read Status -> Engage -> Receipt -> Archive.

    Generates NotificationCreated, NotificationClaimed, per-channel results,
    NotificationDispatched, EngagementRecorded and NotificationArchived.
    """

    def on_start(self):
        self.state = NotificationState()

    @task
    def create(self):
        payload = notification_data()
        with self.client.post(
            "/notifications",
            json=payload,
            catch_response=True,
            name="POST /notifications",
        ) as resp:
            if resp.status_code == 201:
                body = resp.json()
                self.state.notification_id = body["notification_id"]
                self.state.channels = list(body["channels"])
                self.state.current_status = body["status"]
            else:
                resp.failure(failure_message("Create", resp))
                self.interrupt()

    @task
    def read_status(self):
        with self.client.get(
            f"/notifications/{self.state.notification_id}/status",
            catch_response=True,
            name="GET /notifications/{id}/status",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(failure_message("Status", resp))

    @task
    def engage(self):
        channel = random.choice(self.state.channels)
        with self.client.post(
            f"/notifications/{self.state.notification_id}/engagement",
            json=engagement_data(channel),
            catch_response=True,
            name="POST /notifications/{id}/engagement",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(failure_message("Engagement", resp))

    @task
    def receipt(self):
        channel = random.choice(self.state.channels)
        with self.client.post(
            f"/notifications/{self.state.notification_id}/receipts",
            json={"channel": channel},
            catch_response=True,
            name="POST /notifications/{id}/receipts",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(failure_message("Receipt", resp))

    @task
    def archive(self):
        with self.client.post(
            f"/notifications/{self.state.notification_id}/archive",
            catch_response=True,
            name="POST /notifications/{id}/archive",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(failure_message("Archive", resp))

    @task
    def done(self):
        self.interrupt()


class ScheduledNotificationJourney(SequentialTaskSet):
    """Schedule -> Reschedule -> Cancel.

    Scheduled jobs are never dispatched here; the cancel path keeps the
    scheduler sweep's queue from growing across runs.
    """

    def on_start(self):
        self.state = NotificationState()

    @task
    def schedule(self):
        with self.client.post(
            "/notifications",
            json=scheduled_notification_data(),
            catch_response=True,
            name="POST /notifications (scheduled)",
        ) as resp:
            if resp.status_code == 201:
                self.state.notification_id = resp.json()["notification_id"]
                self.state.current_status = "scheduled"
            else:
                resp.failure(failure_message("Schedule", resp))
                self.interrupt()

    @task
    def reschedule(self):
        later = scheduled_notification_data(minutes_ahead=random.randint(300, 600))["scheduled_time"]
        with self.client.put(
            f"/notifications/{self.state.notification_id}",
            json={"scheduled_time": later, "priority": "high"},
            catch_response=True,
            name="PUT /notifications/{id}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(failure_message("Reschedule", resp))

    @task
    def cancel(self):
        with self.client.put(
            f"/notifications/{self.state.notification_id}/cancel",
            json={"reason": "Load test cleanup"},
            catch_response=True,
            name="PUT /notifications/{id}/cancel",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = "cancelled"
            else:
                resp.failure(failure_message("Cancel", resp))

    @task
    def done(self):
        self.interrupt()


class FallbackRetryJourney(SequentialTaskSet):
    """Create with fallback -> Retry -> Read.

    Retry returns 400 when nothing failed; that is an expected outcome
    when every channel reached its recipients.
    """

    def on_start(self):
        self.state = NotificationState()

    @task
    def create(self):
        with self.client.post(
            "/notifications",
            json=fallback_notification_data(),
            catch_response=True,
            name="POST /notifications (fallback)",
        ) as resp:
            if resp.status_code == 201:
                self.state.notification_id = resp.json()["notification_id"]
            else:
                resp.failure(failure_message("Create", resp))
                self.interrupt()

    @task
    def retry(self):
        with self.client.post(
            f"/notifications/{self.state.notification_id}/retry",
            catch_response=True,
            name="POST /notifications/{id}/retry",
        ) as resp:
            if resp.status_code in (200, 400):
                resp.success()
            else:
                resp.failure(failure_message("Retry", resp))

    @task
    def read(self):
        self.client.get(
            f"/notifications/{self.state.notification_id}",
            name="GET /notifications/{id}",
        )

    @task
    def done(self):
        self.interrupt()


class TemplateJourney(SequentialTaskSet):
    """Create Template -> Preview -> Send x3 -> Update -> Deactivate."""

    def on_start(self):
        self.state = TemplateState()

    @task
    def create_template(self):
        payload = template_data()
        with self.client.post(
            "/notifications/templates",
            json=payload,
            catch_response=True,
            name="POST /notifications/templates",
        ) as resp:
            if resp.status_code == 201:
                self.state.template_id = resp.json()["template_id"]
                self.state.channel_type = payload["channel_type"]
            else:
                resp.failure(failure_message("Template create", resp))
                self.interrupt()

    @task
    def preview(self):
        with self.client.post(
            f"/notifications/templates/{self.state.template_id}/test",
            json={"variables": template_variables()},
            catch_response=True,
            name="POST /notifications/templates/{id}/test",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(failure_message("Preview", resp))

    @task
    def send_from_template(self):
        shortcut = "in-app" if self.state.channel_type == "in_app" else self.state.channel_type
        for _ in range(3):
            with self.client.post(
                f"/notifications/{shortcut}",
                json={
                    "template_id": self.state.template_id,
                    "template_variables": template_variables(),
                    "target_users": [user_id()],
                    "created_by": "loadtest",
                },
                catch_response=True,
                name=f"POST /notifications/{shortcut}",
            ) as resp:
                if resp.status_code == 201:
                    self.state.notification_ids.append(resp.json()["notification_id"])
                else:
                    resp.failure(failure_message("Templated send", resp))

    @task
    def update(self):
        with self.client.put(
            f"/notifications/templates/{self.state.template_id}",
            json={"content": "Hi {{name}}, order {{orderId}} is on its way."},
            catch_response=True,
            name="PUT /notifications/templates/{id}",
        ) as resp:
            if resp.status_code == 200:
                self.state.version = resp.json()["version"]
            else:
                resp.failure(failure_message("Template update", resp))

    @task
    def deactivate(self):
        self.client.put(
            f"/notifications/templates/{self.state.template_id}",
            json={"is_active": False},
            name="PUT /notifications/templates/{id} (deactivate)",
        )

    @task
    def done(self):
        self.interrupt()


class DeviceRegistrationJourney(SequentialTaskSet):
    """Register 2 devices -> Push -> Unregister one."""

    def on_start(self):
        self.state = DeviceState(user_id=user_id())

    @task
    def register_devices(self):
        for _ in range(2):
            payload = endpoint_data()
            with self.client.post(
                "/notifications/endpoints",
                json=payload,
                headers={"X-User-Id": self.state.user_id},
                catch_response=True,
                name="POST /notifications/endpoints",
            ) as resp:
                if resp.status_code == 201:
                    self.state.tokens.append(payload["token"])
                else:
                    resp.failure(failure_message("Register", resp))

    @task
    def push(self):
        self.client.post(
            "/notifications/push",
            json={
                "title": "Your order shipped",
                "body": "Tap to track it",
                "target_users": [self.state.user_id],
                "push_priority": "high",
                "created_by": "loadtest",
            },
            name="POST /notifications/push",
        )

    @task
    def unregister_one(self):
        if not self.state.tokens:
            self.interrupt()
        self.client.request(
            "DELETE",
            "/notifications/endpoints",
            json={"token": self.state.tokens[0]},
            headers={"X-User-Id": self.state.user_id},
            name="DELETE /notifications/endpoints",
        )

    @task
    def done(self):
        self.interrupt()


class NotificationUser(HttpUser):
    """Runs the notification journeys with equal weight."""

    wait_time = between(0.5, 2.0)
    tasks = [
        ImmediateNotificationJourney,
        ScheduledNotificationJourney,
        FallbackRetryJourney,
        TemplateJourney,
        DeviceRegistrationJourney,
    ]
