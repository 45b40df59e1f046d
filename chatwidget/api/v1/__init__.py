from fastapi import APIRouter

# Widget previews (admin demo page)
from .previews import router as previews_router

api_router = APIRouter()

# ========== Previews ============================
api_router.include_router(previews_router, prefix="/previews", tags=["previews"])
