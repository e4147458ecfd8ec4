# Models package — import all models here so Alembic can discover them.

from storefront.models.pending_purchase import PendingPurchase  # noqa: F401
from storefront.models.purchase_history import PurchaseHistory  # noqa: F401
from storefront.models.stripe_event import StripeEvent  # noqa: F401
