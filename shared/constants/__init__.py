from .environments import Environment
from .queues import Queues
from .redis_keys import RedisKeys

__all__ = ["Environment", "Queues", "RedisKeys"]
