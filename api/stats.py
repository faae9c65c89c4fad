"""GET /api/stats: dashboard counters."""

from fastapi import APIRouter, Request

from api.base import success_response


def create_stats_router(services: dict) -> APIRouter:
    router = APIRouter()

    @router.get("/stats")
    def get_stats(request: Request):
        return success_response({
            "customers": services["customer"].stats(),
            "orders": services["order"].stats(),
            "tasks": services["task"].stats(),
        }).model_dump(mode="json")

    return router
