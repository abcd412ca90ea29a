"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from photovault.models.base import Base
from photovault.models.user import User, UserProfile, Photographer
from photovault.models.gallery import Client, PhotoGallery
from photovault.models.subscription import Subscription
from photovault.models.commission import Commission
from photovault.models.payment_history import PaymentHistory
from photovault.models.payout import Payout
from photovault.models.webhook_event import ProcessedWebhookEvent, WebhookLog, ErrorLog
from photovault.models.token_balance import TokenBalance
from photovault.models.token_transaction import TokenTransaction
from photovault.models.family import Secondary, AccountTakeover

# Export all for convenience
__all__ = [
    "Base", "User", "UserProfile", "Photographer", "Client", "PhotoGallery",
    "Subscription", "Commission", "PaymentHistory", "Payout",
    "ProcessedWebhookEvent", "WebhookLog", "ErrorLog",
    "TokenBalance", "TokenTransaction", "Secondary", "AccountTakeover",
]
