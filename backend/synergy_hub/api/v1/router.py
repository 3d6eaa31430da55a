from fastapi import APIRouter
from synergy_hub.api.v1 import images, video, upscale, enhance, tasks, artifacts, credits, models

api_router = APIRouter()

api_router.include_router(images.router, prefix="/images", tags=["Images"])
api_router.include_router(video.router, prefix="/video", tags=["Video"])
api_router.include_router(upscale.router, prefix="/upscale", tags=["Upscale"])
api_router.include_router(enhance.router, prefix="/enhance", tags=["Enhance"])
api_router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
api_router.include_router(artifacts.router, prefix="/artifacts", tags=["Artifacts"])
api_router.include_router(credits.router, prefix="/credits", tags=["Credits"])
api_router.include_router(models.router, prefix="/models", tags=["Models"])
