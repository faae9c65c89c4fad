"""Utility modules for cross-cutting concerns."""

from utils.timezone import (
    now_utc, to_utc, to_local, parse_iso, business_date_stamp, business_day_bounds,
)
from utils.user_context import (
    ActorContext,
    SYSTEM_ACTOR,
    get_actor,
    get_current_user_id,
    actor_context,
    user_context,
)
from utils.config import AppConfig
