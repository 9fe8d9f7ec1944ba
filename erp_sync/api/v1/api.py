from fastapi import APIRouter
from erp_sync.api.v1.endpoints import integrations, sync

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(integrations.router)
api_router.include_router(sync.router)
