"""Post-commit tasks: side effects a handler asks for once its transaction commits.

Handlers never send email or touch the cache themselves; they return a list
of PostTask values and the executor runs them after the response.
"""

from dataclasses import dataclass, field
from enum import Enum


class TaskKind(Enum):
    ORDER_CONFIRMATION_EMAIL = "ORDER_CONFIRMATION_EMAIL"
    ADMIN_NEW_ORDER_EMAIL = "ADMIN_NEW_ORDER_EMAIL"
    REFUND_CONFIRMATION_EMAIL = "REFUND_CONFIRMATION_EMAIL"
    PAYMENT_FAILED_EMAIL = "PAYMENT_FAILED_EMAIL"
    ADMIN_REFUND_FAILED_ALERT = "ADMIN_REFUND_FAILED_ALERT"
    ADMIN_DISPUTE_ALERT = "ADMIN_DISPUTE_ALERT"
    ADMIN_WEBHOOK_FAILURE_ALERT = "ADMIN_WEBHOOK_FAILURE_ALERT"
    ADMIN_EMAIL_FAILURE_ALERT = "ADMIN_EMAIL_FAILURE_ALERT"
    INVALIDATE_CACHE = "INVALIDATE_CACHE"


# Emails whose loss means a customer is left without a record of money moving.
CUSTOMER_FINANCIAL_EMAILS = frozenset(
    {
        TaskKind.ORDER_CONFIRMATION_EMAIL,
        TaskKind.REFUND_CONFIRMATION_EMAIL,
        TaskKind.PAYMENT_FAILED_EMAIL,
    }
)


@dataclass(frozen=True)
class PostTask:
    kind: TaskKind
    data: dict = field(default_factory=dict)

    @property
    def is_email(self) -> bool:
        return self.kind != TaskKind.INVALIDATE_CACHE


def email_task(kind: TaskKind, to: str, **context) -> PostTask:
    return PostTask(kind=kind, data={"to": to, **context})


def invalidate_cache(*keys: str) -> PostTask:
    return PostTask(kind=TaskKind.INVALIDATE_CACHE, data={"keys": sorted(set(keys))})
