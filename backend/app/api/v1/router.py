from fastapi import APIRouter
from app.api.v1.endpoints import auth, users, resellers, addons, health
from app.modules.pin_auth.router import router as pin_router

api_router = APIRouter()

api_router.include_router(health.router)

api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(resellers.router, prefix="/resellers", tags=["Resellers"])
api_router.include_router(addons.router, prefix="/addons", tags=["Addons"])

# PIN login for TV apps
api_router.include_router(pin_router, prefix="/pin", tags=["PIN Login"])
