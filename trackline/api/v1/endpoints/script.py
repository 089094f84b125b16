from functools import lru_cache
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from trackline.api.v1.dependencies import get_tenants
from trackline.infrastructure.redis.tenants import TenantDirectory

router = APIRouter()

SCRIPT_PATH = Path(__file__).resolve().parents[3] / "static" / "t.js"

SCRIPT_HEADERS = {
    "Cache-Control": "public, max-age=3600",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cross-Origin-Resource-Policy": "cross-origin",
}


@lru_cache
def load_script() -> bytes:
    return SCRIPT_PATH.read_bytes()


@router.get("/t.js", summary="Tracker script for a tenant")
async def tracking_script(
    pid: str | None = Query(None, max_length=128),
    tenants: TenantDirectory = Depends(get_tenants),
):
    if not pid or not pid.strip():
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing pid")
    if await tenants.get_active(pid.strip()) is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Unknown tracking id")
    return Response(
        content=load_script(),
        media_type="application/javascript",
        headers=SCRIPT_HEADERS,
    )
