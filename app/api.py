"""File defining all the routes for the modules, to configure the router"""

from fastapi import APIRouter

from app.core.core_module_list import core_module_list

api_router = APIRouter()


for module in core_module_list:
    api_router.include_router(module.router)
