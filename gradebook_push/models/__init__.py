# Models package
from gradebook_push.db import Base
from gradebook_push.models.push_subscription import PushSubscription

__all__ = [
    "Base",
    "PushSubscription",
]
