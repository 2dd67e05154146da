"""API Routes Module."""

from fastapi import APIRouter

from shega.api import devices

router = APIRouter()

router.include_router(devices.router, prefix="/devices", tags=["Devices"])
