from fastapi import APIRouter
from neoclip.api.v1 import providers, users, video

api_router = APIRouter()

api_router.include_router(video.router, tags=["Video"])
api_router.include_router(users.router, tags=["User"])
api_router.include_router(providers.router, prefix="/providers", tags=["Providers"])
