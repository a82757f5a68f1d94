# app/api/__init__.py
from app.api.routers import cart_tracking, coupons, health, orders, webhooks

ROUTERS = [
    health.router,
    cart_tracking.router,
    coupons.router,
    orders.router,
    webhooks.router,
]
