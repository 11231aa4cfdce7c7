"""FastAPI router for node and edge endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from medpath.core.types import NodeKind
from medpath.repositories import resolve

router = APIRouter()


class NodeCreateRequest(BaseModel):
    kind: NodeKind
    x: float = 0.0
    y: float = 0.0
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    available_beds: int | None = None


class NodeUpdateRequest(BaseModel):
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    available_beds: int | None = Field(default=None, ge=0)


class NodeApprovalRequest(BaseModel):
    approved: bool


class EdgeCreateRequest(BaseModel):
    source_id: int
    target_id: int
    weight: int | None = Field(default=None, ge=0)


def _graph(request: Request):
    graph = getattr(request.app.state, "graph_store", None)
    if graph is None:
        raise HTTPException(status_code=503, detail="Graph store not available")
    return graph


@router.get("/api/nodes")
async def list_nodes(request: Request, kind: NodeKind | None = None) -> list[dict[str, Any]]:
    """List nodes ordered by id, optionally filtered by kind."""
    nodes = await resolve(_graph(request).list_nodes(kind))
    return [n.model_dump() for n in nodes]


@router.post("/api/nodes", status_code=201)
async def create_node(body: NodeCreateRequest, request: Request) -> dict[str, Any]:
    node = await resolve(_graph(request).add_node(
        body.kind,
        x=body.x,
        y=body.y,
        name=body.name,
        phone=body.phone,
        email=body.email,
        available_beds=body.available_beds,
    ))
    return node.model_dump()


@router.delete("/api/nodes")
async def clear_graph(request: Request) -> dict[str, Any]:
    """Remove every node, edge and referral."""
    await resolve(_graph(request).clear(actor="api"))
    return {"success": True}


@router.get("/api/nodes/{node_id}")
async def get_node(node_id: int, request: Request) -> dict[str, Any]:
    node = await resolve(_graph(request).get_node(node_id))
    if node is None:
        raise HTTPException(status_code=404, detail=f"Node {node_id} not found")
    return node.model_dump()


@router.patch("/api/nodes/{node_id}")
async def update_node(node_id: int, body: NodeUpdateRequest, request: Request) -> dict[str, Any]:
    """Edit name, contact details or a hospital's bed count."""
    node = await resolve(_graph(request).update_node(node_id, **body.model_dump(exclude_none=True)))
    return node.model_dump()


@router.patch("/api/nodes/{node_id}/approve")
async def approve_node(node_id: int, body: NodeApprovalRequest, request: Request) -> dict[str, Any]:
    """Set the user verification flag."""
    node = await resolve(_graph(request).set_approved(node_id, body.approved))
    return node.model_dump()


@router.delete("/api/nodes/{node_id}")
async def delete_node(node_id: int, request: Request) -> dict[str, Any]:
    """Delete a node and cascade to its edges and referrals."""
    removed = await resolve(_graph(request).remove_node(node_id, actor="api"))
    return {"success": True, "deleted_node_id": node_id, **removed.summary()}


@router.get("/api/edges")
async def list_edges(request: Request, node_id: int | None = None) -> list[dict[str, Any]]:
    edges = await resolve(_graph(request).list_edges(node_id))
    return [e.model_dump() for e in edges]


@router.post("/api/edges", status_code=201)
async def create_edge(body: EdgeCreateRequest, request: Request) -> dict[str, Any]:
    """Connect two nodes; the weight defaults to their scaled distance."""
    edge = await resolve(_graph(request).add_edge(body.source_id, body.target_id, body.weight))
    return edge.model_dump()


@router.delete("/api/edges/{edge_id}")
async def delete_edge(edge_id: int, request: Request) -> dict[str, Any]:
    edge = await resolve(_graph(request).remove_edge(edge_id))
    return {"success": True, "deleted_edge_id": edge.id}
