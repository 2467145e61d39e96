"""Compensation failures awaiting manual reconciliation.

Written when the placement saga could not undo one of its own steps, for
example stock that could not be returned after the order write failed.
"""

from datetime import UTC, datetime

from protean import handle
from protean.fields import Boolean, DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from delivery.domain import delivery


@delivery.aggregate
class CompensationFailure:
    order_id = Identifier(required=True)
    step = String(required=True, max_length=100)
    error = Text(required=True)
    context = Text()  # JSON
    recorded_at = DateTime()
    resolved = Boolean(default=False)
    resolved_by = String(max_length=100)
    resolved_at = DateTime()

    @classmethod
    def record(cls, order_id: str, step: str, error: str, context: str | None = None):
        return cls(order_id=order_id, step=step, error=error, context=context, recorded_at=datetime.now(UTC))

    def resolve(self, resolved_by: str) -> None:
        self.resolved = True
        self.resolved_by = resolved_by
        self.resolved_at = datetime.now(UTC)


@delivery.command(part_of="CompensationFailure")
class ResolveCompensationFailure:
    failure_id = Identifier(required=True)
    resolved_by = String(required=True, max_length=100)


@delivery.command_handler(part_of=CompensationFailure)
class ReconciliationHandler:
    @handle(ResolveCompensationFailure)
    def resolve(self, command):
        repo = current_domain.repository_for(CompensationFailure)
        failure = repo.get(command.failure_id)
        failure.resolve(command.resolved_by)
        repo.add(failure)
