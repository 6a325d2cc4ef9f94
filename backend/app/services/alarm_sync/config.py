"""Alarm point sync — constants and channel names.

Pure constants, no imports from the rest of the service.
"""

# Redis PubSub channel (module only PUBLISHES)
REDIS_CHANNEL_SYNC = "alarm_points:sync"

# Redis cache key for the last status snapshot
REDIS_SYNC_STATUS_KEY = "alarm_points:sync:status"
SYNC_STATUS_TTL = 86400  # 24 hours

# AlarmPoint field templates
DESCRIPTION_TEMPLATE = "{name} - {desc}"
CONDITION_TEMPLATE = "above = {above} AND below = {below}"

# Ids per UPDATE ... IN (...) when marking the change log; SQL Server caps
# a statement at 2100 parameters
MARK_PROCESSED_CHUNK = 1000
