"""Main FastAPI application"""
from fastapi import FastAPI
from app.config import get_settings
from app.middleware.cors import setup_cors
from app.middleware.error_handler import ErrorHandlerMiddleware
from contextlib import asynccontextmanager
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)
settings = get_settings()

# APScheduler setup
scheduler = None


def setup_scheduler():
    """Initialize the background scheduler for webhook retries"""
    global scheduler
    try:
        from apscheduler.schedulers.background import BackgroundScheduler
        from app.services.webhook_dispatcher import run_scheduled_retries

        scheduler = BackgroundScheduler()

        scheduler.add_job(
            run_scheduled_retries,
            'interval',
            minutes=settings.webhook_retry_interval_minutes,
            id='retry_failed_webhooks',
            name='Retry failed webhook deliveries',
            replace_existing=True,
            max_instances=1
        )

        scheduler.start()
        logger.info(
            f"Background scheduler started - retrying webhooks every "
            f"{settings.webhook_retry_interval_minutes} minutes"
        )
    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully"""
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    if settings.enable_scheduler:
        setup_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(
    title="FormsEdge API",
    description="Form submissions, integrations and webhook delivery",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

setup_cors(app)
app.add_middleware(ErrorHandlerMiddleware)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "formsedge-backend",
        "scheduler": "running" if scheduler and scheduler.running else "stopped"
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "FormsEdge Backend API",
        "version": "1.0.0",
        "docs": "/docs"
    }


# Import and include routers
from app.routers import forms, integrations, webhooks, admin

app.include_router(forms.router, prefix="/api/forms", tags=["Forms"])
app.include_router(integrations.router, prefix="/api/integrations", tags=["Integrations"])
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
