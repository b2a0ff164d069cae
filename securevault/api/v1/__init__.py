# API v1 routes
from fastapi import APIRouter

from securevault.api.v1 import auth, buckets, files, logs, permissions

router = APIRouter()

router.include_router(auth.router, tags=["Authentication"])
router.include_router(buckets.router, prefix="/buckets", tags=["Buckets"])
router.include_router(files.router, prefix="/files", tags=["Files"])
router.include_router(permissions.router, tags=["Permissions"])
router.include_router(logs.router, prefix="/logs", tags=["Access Logs"])
