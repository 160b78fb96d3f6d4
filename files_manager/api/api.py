from fastapi import APIRouter
from .endpoints import app, auth, files, users

api_router = APIRouter()
api_router.include_router(app.router, tags=["Status"])
api_router.include_router(auth.router, tags=["Authentication"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(files.router, prefix="/files", tags=["Files"])
