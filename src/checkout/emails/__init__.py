"""Template registry: maps email task kinds to template classes.

Each template renders a subject and a plain-text body from the task's data.
"""

from checkout.emails.admin import (
    AdminDisputeAlertTemplate,
    AdminEmailFailureTemplate,
    AdminNewOrderTemplate,
    AdminRefundFailedTemplate,
    AdminWebhookFailureTemplate,
)
from checkout.emails.customer import (
    OrderConfirmationTemplate,
    PaymentFailedTemplate,
    RefundConfirmationTemplate,
)
from checkout.tasks.task import TaskKind

TEMPLATE_REGISTRY: dict[TaskKind, type] = {
    template.kind: template
    for template in (
        OrderConfirmationTemplate,
        RefundConfirmationTemplate,
        PaymentFailedTemplate,
        AdminNewOrderTemplate,
        AdminRefundFailedTemplate,
        AdminDisputeAlertTemplate,
        AdminWebhookFailureTemplate,
        AdminEmailFailureTemplate,
    )
}


def get_template(kind: TaskKind):
    """Look up a template class by task kind."""
    template_cls = TEMPLATE_REGISTRY.get(kind)
    if template_cls is None:
        raise ValueError(f"No email template registered for task kind: {kind.value}")
    return template_cls
