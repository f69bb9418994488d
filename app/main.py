"""
Main FastAPI application for Quikpdf API.
Serves health, PDF tools, user history, billing, Stripe, admin analytics, and metrics.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import configure_logging
from app.api.routes import admin, billing, health, pdf, stripe_routes, user
from app.errors.handlers import register_error_handlers
from app.utils.metrics import router as metrics_router


configure_logging()

app = FastAPI(
    title="Quikpdf API",
    description="PDF toolkit with watermark paywall",
    version="1.0.0",
)

register_error_handlers(app)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-One-Time-Credit-Consumed", "Content-Disposition"],
)

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(pdf.router)
app.include_router(user.router)
app.include_router(billing.router)
app.include_router(stripe_routes.router)
app.include_router(admin.router)
app.include_router(metrics_router)
