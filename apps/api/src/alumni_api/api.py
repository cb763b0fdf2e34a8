from fastapi import APIRouter

from alumni_api.modules.alumni import admin_router as admin_alumni_router
from alumni_api.modules.alumni import router as alumni_router

api_router = APIRouter()

api_router.include_router(alumni_router, prefix="/alumni", tags=["Alumni"])

api_router.include_router(
    admin_alumni_router,
    prefix="/admin/alumni",
    tags=["Admin - Alumni"],
)
