"""Course access module.

Provides:
- Access decisions (admin, free, subscription, course payment)
- Subscriptions
- Redis-cached decisions with invalidation on payment events
"""

from .models import ACCESS_TABLES_CQL, AccessDecision, AccessReason, Subscription
from .service import AccessEvaluator


__all__ = [
    "ACCESS_TABLES_CQL",
    "AccessDecision",
    "AccessEvaluator",
    "AccessReason",
    "Subscription",
]
