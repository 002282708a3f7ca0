"""API v1 Router - Aggregates all API endpoints."""

from fastapi import APIRouter

from dental_imaging.api.v1.endpoints import reconstruction

api_router = APIRouter()

# Panoramic, MPR and DICOM export endpoints
api_router.include_router(
    reconstruction.router,
    prefix="/reconstruction",
    tags=["Reconstruction"],
)
