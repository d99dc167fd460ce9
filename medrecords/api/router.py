from fastapi import APIRouter

from medrecords.api.routes import auth, files, profile

api_router = APIRouter()

api_router.include_router(auth.router, tags=["auth"], prefix="/auth")
api_router.include_router(profile.router, tags=["profile"], prefix="/profile")
api_router.include_router(files.router, tags=["files"], prefix="/files")
