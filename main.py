import os
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

import models  # noqa: F401
from core.config import settings
from core.db import Base, engine
from core.celery import EMAIL_QUEUE, celery_app
from core.errors import StorefrontError
from core.logging import configure_logging
from routes.admin_coupons import router as admin_coupons_router
from routes.admin_delivery import router as admin_delivery_router
from routes.admin_invoices import router as admin_invoices_router
from routes.admin_orders import router as admin_orders_router
from routes.checkout import router as checkout_router
from routes.payments import router as payments_router

load_dotenv()
configure_logging()

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

# Add OpenAPI security schemes for Bearer token authentication on docs/redoc
from fastapi.openapi.utils import get_openapi

def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema["components"]["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    # Only the admin endpoints check it; checkout works anonymously
    openapi_schema["security"] = [{"BearerAuth": []}, {}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_request", "detail": jsonable_encoder(exc.errors())},
    )


# Ensure tables exist (for dev/test; in prod use migrations)
Base.metadata.create_all(bind=engine)

app.include_router(checkout_router)
app.include_router(payments_router)
app.include_router(admin_orders_router)
app.include_router(admin_invoices_router)
app.include_router(admin_coupons_router)
app.include_router(admin_delivery_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@app.get("/celery-health")
def celery_health_check():
    """Whether any worker is consuming the mail queue"""
    try:
        replies = celery_app.control.ping(timeout=1.0)
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}
    if not replies:
        return {"status": "no_workers", "queue": EMAIL_QUEUE}
    return {"status": "healthy", "workers": len(replies), "queue": EMAIL_QUEUE}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.DEBUG,
    )
