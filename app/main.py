# app/main.py
from fastapi import FastAPI
import uvicorn

from app.api import ROUTERS
from app.data.database import Base, engine
from app.utils.logging import get_logger

# IMPORT WSZYSTKICH MODELI NA POCZĄTKU (PRZED JAKIMKOLWIEK CREATE_ALL)
from app.data.models import CartTrackingModel, CouponModel, OrderItemModel, OrderModel  # noqa: F401

logger = get_logger(__name__)

logger.info(f"Initializing database, registered tables: {list(Base.metadata.tables.keys())}")

try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")
except Exception as e:
    logger.error(f"Failed to create tables: {e}")
    raise


def create_app() -> FastAPI:
    app = FastAPI(
        title="Storefront Cart & Orders",
        version="1.0.0",
    )

    for router in ROUTERS:
        app.include_router(router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
