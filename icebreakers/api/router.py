from fastapi import APIRouter

from icebreakers.api.routes import location

api_router = APIRouter(prefix="/v1")

api_router.include_router(location.router, prefix="/location", tags=["location"])
