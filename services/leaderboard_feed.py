import json
from typing import Optional
from redis.asyncio import Redis
from redis.exceptions import RedisError
from core.logger import logger

VERSION_KEY = "quizroom:leaderboard:{quiz_id}:version"
CHANNEL = "quizroom:leaderboard:{quiz_id}"


class LeaderboardFeed:
    """
    Change notifications for a quiz's leaderboard.

    Every submission create or delete bumps a per-quiz version counter and
    publishes an event on the quiz's channel. Polling clients compare versions;
    subscribers re-fetch the leaderboard on each event. Both are best effort:
    a Redis outage never fails the write that triggered the notification.
    """

    def __init__(self, redis: Optional[Redis]):
        self.redis = redis

    async def notify_changed(self, quiz_id: int, reason: str) -> Optional[int]:
        if self.redis is None:
            return None
        try:
            version = await self.redis.incr(VERSION_KEY.format(quiz_id=quiz_id))
            await self.redis.publish(
                CHANNEL.format(quiz_id=quiz_id),
                json.dumps({"quizId": quiz_id, "version": version, "reason": reason}),
            )
            return version
        except (RedisError, OSError) as e:
            logger.warning("Leaderboard notification failed", quiz_id=quiz_id, error=str(e))
            return None

    async def get_version(self, quiz_id: int) -> int:
        if self.redis is None:
            return 0
        try:
            value = await self.redis.get(VERSION_KEY.format(quiz_id=quiz_id))
        except (RedisError, OSError) as e:
            logger.warning("Leaderboard version lookup failed", quiz_id=quiz_id, error=str(e))
            return 0
        return int(value) if value else 0

    async def forget(self, quiz_id: int):
        """Drop the counter of a deleted quiz."""
        if self.redis is None:
            return
        try:
            await self.redis.delete(VERSION_KEY.format(quiz_id=quiz_id))
        except (RedisError, OSError) as e:
            logger.warning("Leaderboard counter cleanup failed", quiz_id=quiz_id, error=str(e))
