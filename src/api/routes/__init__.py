from fastapi import FastAPI

from . import assessments, certificates, checkout, coupons, enrollments, health, webhooks


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the FastAPI application."""
    app.include_router(health.router)
    app.include_router(assessments.router)
    app.include_router(certificates.router)
    app.include_router(coupons.router)
    app.include_router(checkout.router)
    app.include_router(webhooks.router)
    app.include_router(enrollments.router)
