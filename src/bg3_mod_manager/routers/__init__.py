from fastapi import APIRouter

from bg3_mod_manager.routers.archives import router as archives_router
from bg3_mod_manager.routers.environment import router as environment_router
from bg3_mod_manager.routers.load_order import router as load_order_router
from bg3_mod_manager.routers.mods import router as mods_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(mods_router)
api_router.include_router(load_order_router)
api_router.include_router(archives_router)
api_router.include_router(environment_router)
