"""FastAPI router for shortest-path queries."""

from __future__ import annotations

import math
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from medpath.repositories import resolve
from medpath.routing.pathfinder import ShortestPaths
from medpath.routing.projection import project_routes, route_to

router = APIRouter()


def _encode_paths(result: ShortestPaths) -> dict[str, Any]:
    """JSON-safe dist/prev: unreachable distances become null."""
    return {
        "source_id": result.source_id,
        "dist": {
            str(node_id): (None if math.isinf(d) else d)
            for node_id, d in result.dist.items()
        },
        "prev": {str(node_id): p for node_id, p in result.prev.items()},
    }


@router.get("/api/routes/{source_id}")
async def get_routes(source_id: int, request: Request) -> dict[str, Any]:
    """Shortest distances from a source plus a summary per reachable node."""
    state = request.app.state
    snapshot = await resolve(state.graph_store.snapshot())
    result = state.route_service.compute(snapshot, source_id)
    return {
        **_encode_paths(result),
        "routes": [r.model_dump() for r in project_routes(snapshot, result)],
    }


@router.get("/api/routes/{source_id}/{target_id}")
async def get_route(source_id: int, target_id: int, request: Request) -> dict[str, Any]:
    state = request.app.state
    snapshot = await resolve(state.graph_store.snapshot())
    result = state.route_service.compute(snapshot, source_id)
    summary = route_to(snapshot, result, target_id)
    if summary is None:
        raise HTTPException(
            status_code=404,
            detail=f"No route from node {source_id} to node {target_id}",
        )
    return summary.model_dump()
