"""Header block shown above every screen: the user's active alerts."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from ha2tg.storage import event_log
from ha2tg.storage.database import StorageError

if TYPE_CHECKING:
    from ha2tg.core.context import RuntimeContext


@dataclass(frozen=True)
class HeaderItem:
    icon: str
    label: str
    value: str
    last_update: datetime


def all_quiet(now: Optional[datetime] = None) -> HeaderItem:
    return HeaderItem(
        icon="🏠",
        label="System",
        value="All quiet",
        last_update=now or datetime.now(timezone.utc),
    )


async def build_header(ctx: 'RuntimeContext', user_id: int) -> List[HeaderItem]:
    """Aggregate the user's subscribed events over the alert window.

    A storage failure degrades to the "all quiet" line rather than failing
    the screen.
    """
    items: List[HeaderItem] = []
    try:
        alerts = await ctx.db.run(
            event_log.fetch_active_alerts, user_id, ctx.config.alert_window_minutes
        )
    except StorageError as e:
        logging.error("Database error while building header: %s", e)
        alerts = []

    for alert in alerts:
        suffix = f" (x{alert.event_count})" if alert.event_count > 1 else ""
        state = ctx.state_aliases.get(alert.entity_id, {}).get(alert.last_state, alert.last_state)
        items.append(HeaderItem(
            icon="🔔",
            label=ctx.display_name(alert.entity_id),
            value=f"{state}{suffix}",
            last_update=datetime.fromtimestamp(alert.last_updated, timezone.utc),
        ))

    if not items:
        items.append(all_quiet())
    return items
