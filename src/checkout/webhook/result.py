"""What a gateway event handler hands back to the webhook endpoint."""

from dataclasses import dataclass, field

from checkout.tasks.task import PostTask


@dataclass(frozen=True)
class HandlerResult:
    success: bool = True
    tasks: list[PostTask] = field(default_factory=list)
    order_id: str | None = None
    skipped: bool = False
    reason: str | None = None
    already_processed: bool = False

    @classmethod
    def skip(cls, reason: str, order_id: str | None = None) -> "HandlerResult":
        return cls(success=True, skipped=True, reason=reason, order_id=order_id)
