"""Main router for API v1."""

from fastapi import APIRouter

from deployer.api.v1 import deployments, health

router = APIRouter(prefix="/api/v1")

router.include_router(health.router, tags=["health"])
router.include_router(deployments.router, tags=["deployments"])
