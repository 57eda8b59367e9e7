"""Stress test scenarios for dispatch and event pipeline saturation.

NotificationFloodUser generates the maximum number of notifications per
second to stress the dispatch thread pool, the outbox and the projectors.
SpikeUser simulates sudden bursts of single-channel sends.
"""

from locust import HttpUser, constant_pacing, task

from loadtests.data_generators import (
    endpoint_data,
    notification_data,
    scheduled_notification_data,
    template_data,
    user_id,
)


class NotificationFloodUser(HttpUser):
    """Stress test: maximum notification throughput.

    Each task generates 1+ domain events. No sequential dependencies —
    every task creates a new aggregate to avoid lock contention.

    Target: saturate the dispatch pool and the outbox.
    Monitor: p95 of POST /notifications should stay flat while the
    outbox drains when engines are running.
    """

    wait_time = constant_pacing(0.1)  # ~10 requests/sec per user

    @task(6)
    def immediate_multichannel(self):
        """NotificationCreated, NotificationClaimed, one result per channel, NotificationDispatched."""
        self.client.post(
            "/notifications",
            json=notification_data(channels=["email", "sms", "push", "in_app"]),
            name="[STRESS] POST /notifications",
        )

    @task(3)
    def scheduled(self):
        """1 event: NotificationCreated."""
        self.client.post(
            "/notifications",
            json=scheduled_notification_data(),
            name="[STRESS] POST /notifications (scheduled)",
        )

    @task(2)
    def register_endpoint(self):
        """1 event: EndpointRegistered."""
        self.client.post(
            "/notifications/endpoints",
            json=endpoint_data(),
            headers={"X-User-Id": user_id()},
            name="[STRESS] POST /notifications/endpoints",
        )

    @task(1)
    def create_template(self):
        """1 event: TemplateCreated."""
        self.client.post(
            "/notifications/templates",
            json=template_data(),
            name="[STRESS] POST /notifications/templates",
        )

    @task(1)
    def sweep(self):
        """Concurrent sweeps must never double-dispatch a job."""
        self.client.post(
            "/notifications/maintenance/process-scheduled",
            name="[STRESS] POST /notifications/maintenance/process-scheduled",
        )


class SpikeUser(HttpUser):
    """Spike test: rapid-fire in-app sends.

    Use with high user count and instant spawn rate to simulate
    sudden traffic bursts. Spawn 50-100 of these simultaneously
    to see how the system handles sudden load.
    """

    wait_time = constant_pacing(0.05)  # ~20 req/sec per user

    @task
    def rapid_in_app(self):
        self.client.post(
            "/notifications/in-app",
            json={
                "title": "Flash sale",
                "body": "Ends in 10 minutes",
                "target_users": [user_id()],
                "created_by": "loadtest",
            },
            name="[SPIKE] POST /notifications/in-app",
        )
