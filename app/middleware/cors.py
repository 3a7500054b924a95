"""CORS middleware configuration"""
from fastapi.middleware.cors import CORSMiddleware
from app.config import get_settings

settings = get_settings()

# Headers sent by the Supabase JS client and the embed script
ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def setup_cors(app):
    """
    Configure CORS for the admin console and embedded forms

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=ALLOWED_HEADERS,
    )
