#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from app.data.models.cart_tracking import CartTrackingModel
from app.data.models.coupon import CouponModel
from app.data.models.order import OrderModel
from app.data.models.order_item import OrderItemModel

__all__ = ["CartTrackingModel", "CouponModel", "OrderModel", "OrderItemModel"]
