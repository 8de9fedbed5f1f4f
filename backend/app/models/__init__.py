"""SQLAlchemy models for ServSwap.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from app.models.notification import Notification
from app.models.service import Service
from app.models.subscription import Subscription
from app.models.swap import Swap, SwapMessage, SwapStatus
from app.models.user import User

__all__ = [
    "Notification",
    "Service",
    "Subscription",
    "Swap",
    "SwapMessage",
    "SwapStatus",
    "User",
]
