"""
Processed Webhook Event Repository

DB-backed record of acknowledged provider events (survives restarts).
"""

from sqlmodel import select

from directory_billing.domain.entitlement import utcnow
from directory_billing.infrastructure.db.database import dialect_insert, get_session_context
from directory_billing.infrastructure.db.models.webhook_event import ProcessedWebhookEventModel


async def is_event_processed(event_id: str) -> bool:
    """Check if a webhook event has already been processed."""
    async with get_session_context() as session:
        result = await session.execute(
            select(ProcessedWebhookEventModel.event_id).where(
                ProcessedWebhookEventModel.event_id == event_id
            )
        )
        return result.scalar_one_or_none() is not None


async def mark_event_processed(event_id: str, event_type: str) -> None:
    """Record a processed webhook event."""
    async with get_session_context() as session:
        stmt = dialect_insert(session, ProcessedWebhookEventModel).values(
            event_id=event_id,
            event_type=event_type,
            processed_at=utcnow(),
        )
        await session.execute(stmt.on_conflict_do_nothing(index_elements=["event_id"]))
