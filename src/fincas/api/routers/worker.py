"""Liveness for the task worker (APP_ROLE=worker).

Reports which tasks backend this process enqueues follow-up work through,
so a misconfigured worker (e.g. still on "inline") is visible from outside.
"""

import os

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/tasks/health")
def tasks_health() -> dict:
    return {
        "status": "ok",
        "role": "worker",
        "tasks_backend": os.environ.get("TASKS_BACKEND", "inline"),
    }
