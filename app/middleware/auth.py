"""Authentication middleware and dependencies"""
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Dict
from app.config import get_settings
from app.database import supabase_admin
from app.services.status_service import get_admin_status
import httpx
import logging

logger = logging.getLogger(__name__)

settings = get_settings()
security = HTTPBearer(auto_error=False)


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[Dict]:
    """
    Verify Supabase JWT token via Supabase Auth API
    """
    if not credentials:
        return None

    token = credentials.credentials

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{settings.supabase_url}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": settings.supabase_anon_key
                }
            )

        if response.status_code != 200:
            logger.warning(f"Supabase auth failed: {response.status_code}")
            raise HTTPException(status_code=401, detail="Invalid authentication token")

        user_data = response.json()

        return {
            "user_id": user_data.get("id"),
            "role": user_data.get("role"),
            "email": user_data.get("email"),
            "raw_token": token,
            "metadata": user_data.get("user_metadata", {})
        }
    except httpx.RequestError:
        raise HTTPException(status_code=401, detail="Authentication service unavailable")
    except HTTPException:
        raise
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid authentication token")


async def get_current_user(
    auth_data: Optional[Dict] = Depends(verify_token)
) -> Dict:
    """
    Get current authenticated form owner

    Raises:
        HTTPException: If not authenticated
    """
    if not auth_data:
        raise HTTPException(status_code=401, detail="Not authenticated")

    return auth_data


async def get_current_admin(
    auth_data: Dict = Depends(get_current_user)
) -> Dict:
    """
    Get current authenticated platform admin

    Raises:
        HTTPException: If the user is not an admin
    """
    if not get_admin_status(auth_data["user_id"]):
        raise HTTPException(status_code=403, detail="Admin access required")

    return auth_data


def verify_form_owner(form_id: str, user_id: str) -> Dict:
    """
    Load a form the user owns (equivalent to RLS on forms)

    Raises:
        HTTPException: 404 if the form doesn't exist, 403 if owned by someone else
    """
    result = supabase_admin.table("forms").select("id, owner_id, title").eq(
        "id", form_id
    ).limit(1).execute()

    if not result.data:
        raise HTTPException(status_code=404, detail="Form not found")

    form = result.data[0]
    if form.get("owner_id") != user_id:
        raise HTTPException(status_code=403, detail="Access denied")

    return form
