"""Mixed notification workload scenario.

Combines the notification journeys with weights that model realistic
traffic: mostly immediate transactional sends, with scheduling, template
work, device registration and an operator polling the maintenance sweep.
This is the recommended scenario for load baseline testing.
"""

from locust import HttpUser, between, task

from loadtests.scenarios.notifications import (
    DeviceRegistrationJourney,
    FallbackRetryJourney,
    ImmediateNotificationJourney,
    ScheduledNotificationJourney,
    TemplateJourney,
)


class MixedWorkloadUser(HttpUser):
    """Realistic mixed workload simulating concurrent notification traffic.

    Weight distribution:

    Sending (60%):
    - Immediate notifications: most common write operation
    - Fallback + retry: unhappy path

    Scheduling (15%):
    - Schedule, reschedule, cancel

    Templates (10%):
    - Create, preview, send, update

    Devices (15%):
    - Push token registration churn

    Plus a light read load on listing and statistics, and a periodic
    maintenance sweep that contends with dispatch for notification locks.
    """

    wait_time = between(0.5, 3.0)
    tasks = {
        ImmediateNotificationJourney: 10,
        FallbackRetryJourney: 2,
        ScheduledNotificationJourney: 3,
        TemplateJourney: 2,
        DeviceRegistrationJourney: 3,
    }

    @task(2)
    def list_notifications(self):
        self.client.get("/notifications?limit=20", name="GET /notifications")

    @task(1)
    def stats(self):
        self.client.get("/notifications/stats?timeframe=24h", name="GET /notifications/stats")

    @task(1)
    def sweep(self):
        self.client.post("/notifications/maintenance/process-scheduled", name="POST /notifications/maintenance/process-scheduled")
