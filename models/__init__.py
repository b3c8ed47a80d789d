# Import models so that SQLAlchemy metadata includes them on app startup
from .profile import Profile  # noqa: F401
from .product import Product  # noqa: F401
from .variant import ProductVariant  # noqa: F401
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .payment import Payment  # noqa: F401
from .payment_event import PaymentEvent  # noqa: F401
from .pending_checkout import PendingCheckout  # noqa: F401
from .coupon import Coupon  # noqa: F401
from .customer import Customer  # noqa: F401
from .invoice import Invoice, InvoiceLine  # noqa: F401
from .delivery import DeliverySettings, DeliveryProvinceRate  # noqa: F401
