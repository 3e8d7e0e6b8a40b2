from fastapi import APIRouter

from curator.api.routes import graph, health, resources

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(resources.router, tags=["resources"])
api_router.include_router(graph.router, tags=["graph"])
