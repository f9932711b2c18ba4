# 映射表与会议事件处理

from webhook_relay.core.user_mapping import UserMapping, UserMappingRegistry
from webhook_relay.core.events import (
    MEETING_ENDED,
    USER_JOINED,
    USER_LEFT,
    apply_event,
    fill_external_user_id,
    handle_event,
    parse_event,
)

__all__ = [
    "UserMapping",
    "UserMappingRegistry",
    "USER_JOINED",
    "USER_LEFT",
    "MEETING_ENDED",
    "parse_event",
    "fill_external_user_id",
    "apply_event",
    "handle_event",
]
