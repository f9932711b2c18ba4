# 会议事件 -> 映射表生命周期；出站前补全 external-user-id
#
# 事件格式：
#   {"data": {"id": "user-joined", "attributes": {
#       "meeting": {"internal-meeting-id": ..., "external-meeting-id": ...},
#       "user": {"internal-user-id": ..., "external-user-id": ...}}}}

import copy
import logging
from typing import Any, Dict, Optional, Tuple

from webhook_relay.core.user_mapping import UserMappingRegistry

logger = logging.getLogger(__name__)

USER_JOINED = "user-joined"
USER_LEFT = "user-left"
MEETING_ENDED = "meeting-ended"


def parse_event(message: Dict[str, Any]) -> Optional[Tuple[str, Dict[str, Any]]]:
    """返回 (event_id, attributes)；不是合法事件时返回 None。"""
    data = (message or {}).get("data")
    if not isinstance(data, dict):
        return None
    event_id = data.get("id")
    if not event_id:
        return None
    attributes = data.get("attributes")
    return event_id, attributes if isinstance(attributes, dict) else {}


def fill_external_user_id(registry: UserMappingRegistry, message: Dict[str, Any]) -> Dict[str, Any]:
    """事件中只有 internal-user-id 时，按映射表补上 external-user-id（如 user-left）。"""
    parsed = parse_event(message)
    if parsed is None:
        return message
    _, attributes = parsed
    user = attributes.get("user")
    if not isinstance(user, dict) or user.get("external-user-id"):
        return message
    internal_user_id = user.get("internal-user-id")
    if not internal_user_id:
        return message
    external_user_id = registry.get_external_user_id(internal_user_id)
    if external_user_id is None:
        logger.debug("internal-user-id=%s 无映射，保持原样", internal_user_id)
        return message
    out = copy.deepcopy(message)
    out["data"]["attributes"]["user"]["external-user-id"] = external_user_id
    return out


async def apply_event(registry: UserMappingRegistry, message: Dict[str, Any]) -> bool:
    """按事件类型更新映射表；无关事件或字段缺失返回 False。"""
    parsed = parse_event(message)
    if parsed is None:
        return False
    event_id, attributes = parsed
    user = attributes.get("user") or {}
    meeting = attributes.get("meeting") or {}

    if event_id == USER_JOINED:
        internal_user_id = user.get("internal-user-id")
        meeting_id = meeting.get("internal-meeting-id")
        if not internal_user_id or not meeting_id:
            logger.warning("user-joined 缺少 internal-user-id 或 internal-meeting-id，跳过")
            return False
        await registry.add_mapping(internal_user_id, user.get("external-user-id") or "", meeting_id)
        return True

    if event_id == USER_LEFT:
        internal_user_id = user.get("internal-user-id")
        if not internal_user_id:
            logger.warning("user-left 缺少 internal-user-id，跳过")
            return False
        await registry.remove_mapping(internal_user_id)
        return True

    if event_id == MEETING_ENDED:
        meeting_id = meeting.get("internal-meeting-id")
        if not meeting_id:
            logger.warning("meeting-ended 缺少 internal-meeting-id，跳过")
            return False
        await registry.remove_mappings_by_meeting(meeting_id)
        return True

    return False


async def handle_event(registry: UserMappingRegistry, message: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """先补全再更新映射表，保证 user-left 仍能查到 external-user-id。"""
    out = fill_external_user_id(registry, message)
    applied = await apply_event(registry, message)
    return out, applied
