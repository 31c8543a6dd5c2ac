"""Top-level API router."""

from fastapi import APIRouter

from budget_execution.api.routes.executions import router as executions_router
from budget_execution.api.routes.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(executions_router)
