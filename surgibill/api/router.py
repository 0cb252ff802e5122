# surgibill/api/router.py
from fastapi import APIRouter

from surgibill.api import (
    routes_documents,
    routes_materials,
    routes_pricing,
)

api_router = APIRouter()

# Pricing engine
api_router.include_router(routes_pricing.router)

# Masters
api_router.include_router(routes_materials.router)
api_router.include_router(routes_materials.hospitals_router)

# Documents
api_router.include_router(routes_documents.templates_router)
api_router.include_router(routes_documents.inquiries_router)
