"""Cloud Tasks backend for GCP deployment.

Every task is an authenticated HTTP POST to the worker service. The task
name is derived from the task id, so Cloud Tasks itself rejects a second
enqueue of the same inbound event (e.g. a webhook retried by YCloud).
"""

import json
import os
import re
from datetime import datetime
from typing import Any

from google.cloud import tasks_v2
from google.protobuf import timestamp_pb2

from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_LOCATION = "us-central1"
DEFAULT_QUEUE = "fincas-default"

# Task names allow letters, digits, hyphens and underscores only
_NAME_REPLACEMENTS = {":": "-", "/": "-", ".": "_"}
_NAME_INVALID = re.compile(r"[^A-Za-z0-9_-]")


def _required(name: str, message: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(message)
    return value


def _queue_settings() -> dict[str, str]:
    """Read and validate queue + OIDC settings. Fails closed."""
    project = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT_ID")
    if not project:
        raise RuntimeError("GOOGLE_CLOUD_PROJECT or GCP_PROJECT_ID required")
    return {
        "project": project,
        "location": os.environ.get("GCP_LOCATION", DEFAULT_LOCATION),
        "queue": os.environ.get("GCP_TASKS_QUEUE", DEFAULT_QUEUE),
        "worker_url": _required("WORKER_BASE_URL", "WORKER_BASE_URL required for Cloud Tasks"),
        "service_account": _required(
            "TASKS_OIDC_SERVICE_ACCOUNT", "TASKS_OIDC_SERVICE_ACCOUNT required for Cloud Tasks"
        ),
        "audience": _required("TASKS_OIDC_AUDIENCE", "TASKS_OIDC_AUDIENCE required for Cloud Tasks"),
    }


def task_name(parent: str, task_id: str) -> str:
    """Full Cloud Tasks name for a task id ("ycloud:evt_1" -> ".../tasks/ycloud-evt_1")."""
    safe = task_id
    for old, new in _NAME_REPLACEMENTS.items():
        safe = safe.replace(old, new)
    return f"{parent}/tasks/{_NAME_INVALID.sub('_', safe)}"


def build_task(
    settings: dict[str, str],
    parent: str,
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> dict[str, Any]:
    headers = {"Content-Type": "application/json"}
    if correlation_id:
        headers["X-Correlation-ID"] = correlation_id

    task: dict[str, Any] = {
        "name": task_name(parent, task_id),
        "http_request": {
            "http_method": tasks_v2.HttpMethod.POST,
            "url": f"{settings['worker_url'].rstrip('/')}{url_path}",
            "headers": headers,
            "body": json.dumps(payload).encode(),
            "oidc_token": {
                "service_account_email": settings["service_account"],
                "audience": settings["audience"],
            },
        },
    }
    if schedule_time:
        timestamp = timestamp_pb2.Timestamp()
        timestamp.FromDatetime(schedule_time)
        task["schedule_time"] = timestamp
    return task


def enqueue_cloud_task(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """Enqueue task via Google Cloud Tasks.

    Returns:
        True if the task was created or already existed.

    Raises:
        RuntimeError: If required env vars are not set.
        Exception: Any other Cloud Tasks API error.
    """
    settings = _queue_settings()
    client = tasks_v2.CloudTasksClient()
    parent = client.queue_path(settings["project"], settings["location"], settings["queue"])
    task = build_task(settings, parent, task_id, url_path, payload, correlation_id, schedule_time)

    log_ctx = safe_log_context(task_id=task_id, url_path=url_path, correlationId=correlation_id)
    try:
        response = client.create_task(parent=parent, task=task)
    except Exception as e:
        if "ALREADY_EXISTS" in str(e):
            logger.info("cloud task already exists (dedupe)", extra={"extra_fields": log_ctx})
            return True
        logger.exception("failed to enqueue cloud task", extra={"extra_fields": log_ctx})
        raise

    logger.info(
        "cloud task enqueued",
        extra={"extra_fields": {**log_ctx, "task_name": str(response.name)}},
    )
    return True
