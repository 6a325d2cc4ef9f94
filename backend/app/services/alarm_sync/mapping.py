"""ExternalPoint -> AlarmPoint. Shared by initial, incremental and full sync."""
from models.alarm_point import AlarmPoint
from services.alarm_sync.config import CONDITION_TEMPLATE, DESCRIPTION_TEMPLATE
from services.alarm_sync.external_source import ExternalPoint


def describe(point: ExternalPoint) -> str:
    if not point.description:
        return point.name
    return DESCRIPTION_TEMPLATE.format(name=point.name, desc=point.description)


def condition(point: ExternalPoint) -> str:
    return CONDITION_TEMPLATE.format(
        above=point.threshold_above, below=point.threshold_below,
    )


def to_alarm_point(point: ExternalPoint, group_id: int) -> AlarmPoint:
    return AlarmPoint(
        name=point.name,
        description=describe(point),
        condition=condition(point),
        group_id=group_id,
        is_active=True,
        external_id=str(point.object_id),
        external_seq=point.object_seq,
    )
