"""Post-Task Executor: runs handler side effects after the transaction commits.

Tasks run one at a time, in order. A failing task never stops the ones after
it; failures are counted and reported. If any of them was a customer email
about money (order confirmation, refund confirmation, payment failed), one
aggregated alert goes to the operators so a human can follow up.

Tasks are not persisted: if the process dies between commit and this
executor, they are lost.
"""

from dataclasses import dataclass, field

import structlog

from checkout.channel import get_cache, get_email_channel
from checkout.emails import get_template
from checkout.tasks.task import CUSTOMER_FINANCIAL_EMAILS, PostTask, TaskKind
from checkout.urls import admin_email

logger = structlog.get_logger(__name__)


class EmailDeliveryError(Exception):
    """The email channel reported that a message was not sent."""


@dataclass(frozen=True)
class TaskFailure:
    kind: TaskKind
    error: str
    to: str | None = None


@dataclass
class ExecutionReport:
    successful: int = 0
    failed: int = 0
    errors: list[TaskFailure] = field(default_factory=list)


class PostTaskExecutor:
    def __init__(self, email_channel=None, cache=None) -> None:
        self.email_channel = email_channel or get_email_channel()
        self.cache = cache or get_cache()

    def run(self, tasks: list[PostTask]) -> ExecutionReport:
        report = ExecutionReport()
        for task in tasks:
            try:
                self._execute(task)
            except Exception as exc:  # noqa: BLE001
                report.failed += 1
                report.errors.append(TaskFailure(kind=task.kind, error=str(exc), to=task.data.get("to")))
                logger.error(
                    "Post-commit task failed",
                    task_kind=task.kind.value,
                    recipient=task.data.get("to"),
                    error=str(exc),
                )
            else:
                report.successful += 1

        financial_failures = [f for f in report.errors if f.kind in CUSTOMER_FINANCIAL_EMAILS]
        if financial_failures:
            self._alert_undelivered_emails(financial_failures)

        logger.info(
            "Post-commit tasks finished",
            successful=report.successful,
            failed=report.failed,
        )
        return report

    def _execute(self, task: PostTask) -> None:
        if task.kind == TaskKind.INVALIDATE_CACHE:
            self.cache.invalidate(set(task.data["keys"]))
            return

        self._send(task.kind, task.data)

    def _send(self, kind: TaskKind, data: dict) -> None:
        recipient = data.get("to")
        if not recipient:
            raise EmailDeliveryError(f"{kind.value} has no recipient")

        content = get_template(kind).render(data)
        result = self.email_channel.send(to=recipient, subject=content["subject"], body=content["body"])
        if result.get("status") != "sent":
            raise EmailDeliveryError(result.get("error") or "Email delivery failed")

    def _alert_undelivered_emails(self, failures: list[TaskFailure]) -> None:
        context = {
            "to": admin_email(),
            "failures": [{"kind": f.kind.value, "to": f.to, "error": f.error} for f in failures],
        }
        try:
            self._send(TaskKind.ADMIN_EMAIL_FAILURE_ALERT, context)
        except EmailDeliveryError as exc:
            logger.critical(
                "Could not alert operators about undelivered customer emails",
                failures=context["failures"],
                error=str(exc),
            )


def run_post_tasks(tasks: list[PostTask]) -> ExecutionReport:
    """Entry point for background execution after a webhook response."""
    return PostTaskExecutor().run(tasks)
