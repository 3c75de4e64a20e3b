from fastapi import APIRouter
from servicelog.api.admin.custom_fields_modules.router import client_fields_router
from servicelog.api.admin.custom_fields_modules.router import router as custom_fields_router

router = APIRouter()
router.include_router(custom_fields_router, prefix="/custom-fields", tags=["AdminCustomFields"])
router.include_router(client_fields_router, prefix="/clients", tags=["AdminClientFields"])
