from .principals import Company, CompanyUser, User
from .subscriptions import SubscriptionPlan, Subscription
from .notifications import NotificationEvent, NotificationDelivery
from .inventory import (
    InventoryStock,
    InventoryDestination,
    InventoryItem,
    InventoryMovement,
    InventoryAdjustmentRequest,
)
from .auth import SessionToken

__all__ = [
    'Company', 'CompanyUser', 'User',
    'SubscriptionPlan', 'Subscription',
    'NotificationEvent', 'NotificationDelivery',
    'InventoryStock', 'InventoryDestination', 'InventoryItem', 'InventoryMovement',
    'InventoryAdjustmentRequest',
    'SessionToken',
]
