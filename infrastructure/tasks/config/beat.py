"""Celery beat schedule configuration.

Keeping the structure close to the Celery docs makes copying snippets
straightforward for new tasks.
"""
from __future__ import annotations

CELERY_BEAT_SCHEDULE = {
    # Re-apply side effects of completed payments whose vendor credit is missing
    "payments-reconcile-uncredited": {
        "task": "infrastructure.tasks.tasks.payments.reconcile_pending_transactions",
        "schedule": 900,  # every 15 minutes
        "kwargs": {"limit": 100},
    },
}
