from campusfix.realtime.feed import (
    NOTIFICATIONS_CHANNEL,
    ChangeFeed,
    InMemoryChangeFeed,
    RedisChangeFeed,
    issue_channel,
    iter_changes,
)

__all__ = [
    "NOTIFICATIONS_CHANNEL",
    "ChangeFeed",
    "InMemoryChangeFeed",
    "RedisChangeFeed",
    "issue_channel",
    "iter_changes",
]
