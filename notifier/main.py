"""
Shopify WhatsApp Notifier
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from contextlib import asynccontextmanager

from notifier.config import get_settings
from notifier.utils.logger import log
from notifier import __version__

# Import routers
from notifier.api import health, webhooks, whatsapp, merchant, flows
from notifier.middleware.security_middleware import SecurityMiddleware

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from notifier.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the scheduler for abandoned carts, review requests and campaigns
    if settings.scheduler_enabled:
        try:
            from notifier.scheduler import start_scheduler
            start_scheduler()
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")
    else:
        log.info("Scheduler disabled")

    yield

    # Shutdown
    from notifier.scheduler import stop_scheduler
    stop_scheduler()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Shopify -> WhatsApp notification relay

    - Order, shipping and delivery notifications from Shopify webhooks
    - Abandoned cart recovery (1h / 24h / 48h reminders)
    - Review requests after delivery
    - Inbound WhatsApp commands (HELP, ORDER, SUPPORT, STOP, START)
    - Merchant-authored message flows per language
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Security middleware (Basic Auth gate for the merchant API)
app.add_middleware(SecurityMiddleware)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(webhooks.router)
app.include_router(whatsapp.router)
app.include_router(merchant.router)
app.include_router(flows.router)


@app.get("/robots.txt", response_class=PlainTextResponse)
async def robots_txt():
    """Block all crawlers"""
    return "User-agent: *\nDisallow: /\n"


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "status": "/status",
        "endpoints": {
            "shopify_webhooks": "POST /webhooks",
            "shopify_webhook_alias": "POST /webhooks/{topic}",
            "whatsapp_inbound": "POST /whatsapp/webhook",
            "whatsapp_status": "POST /whatsapp/status",
            "install_shop": "POST /api/shops",
            "automation_settings": "GET|POST /api/automation-settings",
            "flows": "GET|POST /api/whatsapp-flows",
            "abandoned_carts": "GET /api/abandoned-carts",
            "orders": "GET /api/orders",
            "customers": "GET /api/customers",
            "stats": "GET /api/stats",
            "history": "GET /api/whatsapp-history/{phone}",
            "send_message": "POST /api/send-message",
            "trigger_abandoned_cart": "POST /api/trigger-abandoned-cart",
            "test_notification": "POST /api/test-notifications/{type}",
            "scheduled_jobs": "GET /scheduler/jobs"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "notifier.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
