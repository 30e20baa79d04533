from fastapi import FastAPI

from storefront.database import init_db
from storefront.errors import register_exception_handlers
from storefront.log_config import configure_logging
from storefront.routes import order_router, payment_router

configure_logging()

app = FastAPI(title="Storefront Order & Payment Service")

register_exception_handlers(app)
app.include_router(order_router)
app.include_router(payment_router)

init_db()


@app.get("/health")
def health():
    return {"status": "ok"}
