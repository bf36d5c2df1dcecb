"""
Health check and status endpoints
"""
from fastapi import APIRouter, Depends
from datetime import datetime
from notifier.config import get_settings
from notifier.connectors.whatsapp import TwilioWhatsAppClient, get_whatsapp_client
from notifier.scheduler import get_scheduled_jobs, scheduler
from notifier import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status(client: TwilioWhatsAppClient = Depends(get_whatsapp_client)):
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "messaging_configured": client.is_configured,
        "scheduler_running": scheduler.running,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/scheduler/jobs")
async def list_scheduled_jobs():
    """Scheduled jobs with their next run time"""
    return {"success": True, "data": get_scheduled_jobs()}
