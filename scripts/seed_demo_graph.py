#!/usr/bin/env python3
"""Seed a demo graph into a running MedPath backend.

Usage:
    # Start the backend first:
    uvicorn medpath.web.app:create_app --factory --port 8080

    # Seed the bundled layout:
    python3 scripts/seed_demo_graph.py

    # Seed a custom layout against a different host, wiping existing data:
    python3 scripts/seed_demo_graph.py --layout my_graph.yml \
        --base-url http://localhost:9000 --reset

All data goes through the public API, so it passes the same validation as
nodes and edges drawn in the UI.

Data created:
    - Users and hospitals from the bundled medpath/graph/demo_graph.yml
    - Edges between them (weights derived from position when omitted)
    - One pending referral per user to its nearest reachable hospital
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone

import httpx

from medpath.graph.layout import load_layout

DEFAULT_BASE_URL = "http://localhost:8080"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def api(
    client: httpx.Client,
    method: str,
    path: str,
    *,
    json: dict | None = None,
    params: dict | None = None,
) -> dict | list | None:
    """Make an API call and return parsed JSON, or None on failure."""
    resp = client.request(method, path, json=json, params=params)
    if resp.status_code >= 400:
        print(f"  FAILED {method} {path} -> {resp.status_code}: {resp.text[:200]}")
        return None
    if resp.headers.get("content-type", "").startswith("application/json"):
        return resp.json()
    return None


def section(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


def seed_graph(client: httpx.Client, layout_path: str | None) -> dict[str, dict]:
    """Create nodes and edges; returns label -> created node."""
    layout = load_layout(layout_path)

    section("Nodes")
    created: dict[str, dict] = {}
    for node in layout.nodes:
        payload = {k: v for k, v in layout.node_payload(node).items() if v is not None}
        result = api(client, "POST", "/api/nodes", json=payload)
        if result:
            created[node.key] = result
            beds = f", {result['available_beds']} beds" if result["kind"] == "hospital" else ""
            print(f"  [{result['id']}] {result['name']} ({result['kind']}{beds})")

    section("Edges")
    for edge in layout.edges:
        if edge.source not in created or edge.target not in created:
            print(f"  Skipping {edge.source} - {edge.target}: endpoint was not created")
            continue
        body = {
            "source_id": created[edge.source]["id"],
            "target_id": created[edge.target]["id"],
        }
        if edge.weight is not None:
            body["weight"] = edge.weight
        result = api(client, "POST", "/api/edges", json=body)
        if result:
            print(f"  {edge.source} - {edge.target} (weight {result['weight']})")
    return created


def seed_referrals(client: httpx.Client, created: dict[str, dict]) -> None:
    """Submit one referral per user to the closest reachable hospital."""
    section("Referrals")
    for node in created.values():
        if node["kind"] != "user":
            continue
        routes = api(client, "GET", f"/api/routes/{node['id']}")
        hospitals = [r for r in (routes or {}).get("routes", []) if r["notifiable"]]
        if not hospitals:
            print(f"  {node['name']}: no reachable hospital")
            continue
        nearest = min(hospitals, key=lambda r: r["distance"])
        result = api(client, "POST", "/api/referrals", json={
            "source_id": node["id"],
            "target_id": nearest["target_id"],
        })
        if result:
            print(f"  {node['name']} -> {nearest['target_name']}: {result['path_text']}")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Seed a demo graph into a running MedPath backend"
    )
    parser.add_argument(
        "--base-url",
        default=DEFAULT_BASE_URL,
        help=f"Backend base URL (default: {DEFAULT_BASE_URL})",
    )
    parser.add_argument(
        "--layout",
        default=None,
        help="YAML layout file (default: the bundled demo_graph.yml)",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete all nodes, edges and referrals before seeding",
    )
    parser.add_argument(
        "--skip-referrals",
        action="store_true",
        help="Only create the graph",
    )
    args = parser.parse_args()

    print("MedPath Demo Graph Seeder")
    print(f"Target: {args.base_url}")
    print(f"Time:   {datetime.now(timezone.utc).isoformat()}")

    with httpx.Client(base_url=args.base_url, timeout=30.0) as client:
        try:
            health = api(client, "GET", "/api/health")
        except httpx.ConnectError:
            health = None
        if not health:
            print(f"\nERROR: Cannot reach {args.base_url}. Start the backend first:")
            print("  uvicorn medpath.web.app:create_app --factory --port 8080")
            sys.exit(1)

        print(f"Backend: {health.get('status', 'unknown')} (v{health.get('version', '?')}, "
              f"{health.get('backend', '?')} backend)")

        if args.reset:
            api(client, "DELETE", "/api/nodes")
            print("  Existing graph cleared")

        created = seed_graph(client, args.layout)
        if not args.skip_referrals:
            seed_referrals(client, created)

        section("Done")
        print(f"  {len(created)} node(s) seeded.")


if __name__ == "__main__":
    main()
