"""Event type constants published by the credentials manager."""

from __future__ import annotations


class EventType:
    """Namespace for event type string constants."""

    # All reads of a service load cycle have completed, successfully or not
    SERVICE_READY = "credentials.service_ready"

    # A read, write or delete job against the backend has completed
    JOB_FINISHED = "credentials.job_finished"
