"""Per-destination route summaries that drive the notify-hospital action."""

from __future__ import annotations

from pydantic import BaseModel, computed_field

from medpath.core.types import NodeKind
from medpath.graph.models import GraphSnapshot
from medpath.referrals.models import PATH_SEPARATOR
from medpath.routing.pathfinder import ShortestPaths, reconstruct_path


class RouteSummary(BaseModel):
    source_id: int
    target_id: int
    target_name: str
    target_kind: NodeKind
    distance: float
    path: list[str]

    @computed_field
    @property
    def path_text(self) -> str:
        return PATH_SEPARATOR.join(self.path)

    @computed_field
    @property
    def notifiable(self) -> bool:
        """Only hospitals can receive a referral."""
        return self.target_kind == NodeKind.HOSPITAL


def route_to(
    snapshot: GraphSnapshot, result: ShortestPaths, target_id: int
) -> RouteSummary | None:
    target = snapshot.get_node(target_id)
    if target is None:
        return None
    path = reconstruct_path(snapshot, result, target_id)
    if path is None:
        return None
    return RouteSummary(
        source_id=result.source_id,
        target_id=target_id,
        target_name=target.name,
        target_kind=target.kind,
        distance=result.dist[target_id],
        path=path,
    )


def project_routes(snapshot: GraphSnapshot, result: ShortestPaths) -> list[RouteSummary]:
    """Summaries for every reachable node except the source, by ascending id."""
    routes = []
    for node in snapshot.nodes:
        if node.id == result.source_id:
            continue
        summary = route_to(snapshot, result, node.id)
        if summary is not None:
            routes.append(summary)
    return routes
