"""Tests for the SQL graph and referral repositories with SQLite async."""

from __future__ import annotations

import pytest

from medpath.core.config import ReferralConfig
from medpath.core.errors import (
    AlreadyResolvedError,
    DuplicateEdgeError,
    DuplicatePendingError,
    InvalidEdgeError,
    InvalidNodeError,
    NoBedsAvailableError,
    NodeNotFoundError,
    ReferralNotFoundError,
    StaleRouteError,
    UnknownNodeError,
    UnreachableTargetError,
)
from medpath.core.types import NodeKind, ReferralStatus
from medpath.db.engine import DatabaseManager
from medpath.repositories.protocols import GraphRepository, ReferralRepository
from medpath.repositories.sql.graph import SqlGraphRepository
from medpath.repositories.sql.referrals import SqlReferralRepository
from medpath.routing.pathfinder import reconstruct_path, shortest_paths


@pytest.fixture
async def db(tmp_path):
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'medpath.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def graph(db) -> SqlGraphRepository:
    return SqlGraphRepository(db)


@pytest.fixture
def referrals(db, graph) -> SqlReferralRepository:
    return SqlReferralRepository(db, graph)


@pytest.fixture
async def chain(graph) -> tuple[int, int, int]:
    a = (await graph.add_node(NodeKind.USER, name="A")).id
    b = (await graph.add_node(NodeKind.USER, name="B")).id
    h = (await graph.add_node(NodeKind.HOSPITAL, name="H", available_beds=1)).id
    await graph.add_edge(a, b, 5)
    await graph.add_edge(b, h, 3)
    return a, b, h


async def test_repositories_satisfy_protocols(graph, referrals):
    assert isinstance(graph, GraphRepository)
    assert isinstance(referrals, ReferralRepository)


class TestSqlGraph:
    async def test_add_node_defaults(self, graph):
        user = await graph.add_node(NodeKind.USER)
        hospital = await graph.add_node(NodeKind.HOSPITAL)
        assert user.name == f"User {user.id}"
        assert user.phone == "+1 234 567 890"
        assert hospital.name == f"Hospital {hospital.id}"
        assert hospital.available_beds == 20
        assert hospital.id > user.id

    async def test_invalid_beds_write_nothing(self, graph):
        with pytest.raises(InvalidNodeError):
            await graph.add_node(NodeKind.HOSPITAL, available_beds=0)
        assert await graph.list_nodes() == []

    async def test_get_and_list(self, graph, chain):
        a, b, h = chain
        assert (await graph.get_node(h)).available_beds == 1
        assert await graph.get_node(999) is None
        hospitals = await graph.list_nodes(NodeKind.HOSPITAL)
        assert [n.id for n in hospitals] == [h]

    async def test_update_and_approve(self, graph, chain):
        a, b, h = chain
        updated = await graph.update_node(h, name="General", available_beds=4)
        assert (updated.name, updated.available_beds) == ("General", 4)
        with pytest.raises(InvalidNodeError):
            await graph.update_node(a, available_beds=1)
        assert (await graph.set_approved(a, True)).approved is True
        with pytest.raises(NodeNotFoundError):
            await graph.set_approved(999, True)

    async def test_edge_rules(self, graph, chain):
        a, b, h = chain
        with pytest.raises(DuplicateEdgeError):
            await graph.add_edge(b, a, 1)
        with pytest.raises(InvalidEdgeError):
            await graph.add_edge(a, a, 1)
        with pytest.raises(UnknownNodeError):
            await graph.add_edge(a, 999, 1)
        assert len(await graph.list_edges()) == 2

    async def test_derived_weight(self, graph):
        a = await graph.add_node(NodeKind.USER, x=0, y=0)
        b = await graph.add_node(NodeKind.USER, x=60, y=80)
        assert (await graph.add_edge(a.id, b.id)).weight == 10

    async def test_snapshot_matches_in_memory_paths(self, graph, chain):
        a, b, h = chain
        snapshot = await graph.snapshot()
        result = shortest_paths(snapshot, a)
        assert result.dist == {a: 0, b: 5, h: 8}
        assert reconstruct_path(snapshot, result, h) == ["A", "B", "H"]

    async def test_snapshot_rereads_when_topology_changes_mid_read(
        self, graph, referrals, chain, monkeypatch
    ):
        a, b, h = chain
        edge_id = (await graph.list_edges(h))[0].id
        read_version = graph._read_version
        calls = 0

        async def remove_edge_before_second_read(db):
            nonlocal calls
            calls += 1
            if calls == 2:
                await graph.remove_edge(edge_id)
            return await read_version(db)

        monkeypatch.setattr(graph, "_read_version", remove_edge_before_second_read)
        snapshot = await graph.snapshot()
        assert len(snapshot.edges) == 1
        assert snapshot.version == await graph.version()
        assert not shortest_paths(snapshot, a).reachable(h)
        with pytest.raises(UnreachableTargetError):
            await referrals.submit(a, h)

    async def test_version_changes_on_topology_only(self, graph, chain):
        a, b, h = chain
        before = await graph.version()
        await graph.update_node(a, name="renamed")
        assert await graph.version() == before
        edges = await graph.list_edges()
        await graph.remove_edge(edges[0].id)
        assert await graph.version() == before + 1

    async def test_remove_node_cascades(self, graph, referrals, chain):
        a, b, h = chain
        from_b = await referrals.submit(b, h)
        removed = await graph.remove_node(b)
        assert len(removed.edges) == 2
        assert [r.id for r in removed.referrals] == [from_b.id]
        assert await graph.list_edges() == []
        with pytest.raises(ReferralNotFoundError):
            await referrals.get(from_b.id)

    async def test_ids_not_reused(self, graph, chain):
        a, b, h = chain
        await graph.remove_node(h)
        fresh = await graph.add_node(NodeKind.HOSPITAL)
        assert fresh.id > h

    async def test_clear(self, graph, referrals, chain):
        a, b, h = chain
        await referrals.submit(a, h)
        await graph.clear()
        assert await graph.list_nodes() == []
        assert await referrals.list() == []


class TestSqlReferrals:
    async def test_submit_and_approve(self, graph, referrals, chain):
        a, b, h = chain
        referral = await referrals.submit(a, h)
        assert referral.path == ["A", "B", "H"]
        assert referral.distance == 8

        approved = await referrals.approve(referral.id, approver="dr-lee")
        assert approved.status == ReferralStatus.APPROVED
        assert (await graph.get_node(h)).available_beds == 0
        stored = await referrals.get(referral.id)
        assert stored.status == ReferralStatus.APPROVED
        assert stored.resolved_by == "dr-lee"

    async def test_duplicate_pending(self, referrals, chain):
        a, b, h = chain
        await referrals.submit(a, h)
        with pytest.raises(DuplicatePendingError):
            await referrals.submit(a, h)

    async def test_resubmit_after_approval_then_no_beds(self, graph, referrals, chain):
        a, b, h = chain
        await referrals.approve((await referrals.submit(a, h)).id)
        second = await referrals.submit(a, h)
        with pytest.raises(NoBedsAvailableError):
            await referrals.approve(second.id)
        assert (await referrals.get(second.id)).is_pending
        assert (await graph.get_node(h)).available_beds == 0

    async def test_reject(self, graph, referrals, chain):
        a, b, h = chain
        referral = await referrals.submit(a, h)
        await referrals.reject(referral.id)
        with pytest.raises(AlreadyResolvedError):
            await referrals.approve(referral.id)
        assert (await graph.get_node(h)).available_beds == 1

    async def test_validation(self, graph, referrals, chain):
        a, b, h = chain
        with pytest.raises(InvalidNodeError):
            await referrals.submit(a, b)
        far = (await graph.add_node(NodeKind.HOSPITAL)).id
        with pytest.raises(UnreachableTargetError):
            await referrals.submit(a, far)

    async def test_stale_route(self, graph, referrals, chain):
        a, b, h = chain
        referral = await referrals.submit(a, h)
        edge = (await graph.list_edges(h))[0]
        await graph.remove_edge(edge.id)
        with pytest.raises(StaleRouteError):
            await referrals.approve(referral.id)
        assert (await referrals.get(referral.id)).is_pending

    async def test_last_bed_goes_to_one_referral(self, graph, referrals):
        hospital = (await graph.add_node(NodeKind.HOSPITAL, available_beds=1)).id
        ids = []
        for _ in range(5):
            user = (await graph.add_node(NodeKind.USER)).id
            await graph.add_edge(user, hospital, 1)
            ids.append((await referrals.submit(user, hospital)).id)

        approved, refused = [], []
        for rid in ids:
            try:
                approved.append(await referrals.approve(rid))
            except NoBedsAvailableError:
                refused.append(rid)
        assert len(approved) == 1
        assert len(refused) == 4
        assert (await graph.get_node(hospital)).available_beds == 0
        assert len(await referrals.list(status=ReferralStatus.PENDING)) == 4

    async def test_approve_all_pending(self, graph, referrals):
        hospital = (await graph.add_node(NodeKind.HOSPITAL, available_beds=2)).id
        ids = set()
        for _ in range(3):
            user = (await graph.add_node(NodeKind.USER)).id
            await graph.add_edge(user, hospital, 2)
            ids.add((await referrals.submit(user, hospital)).id)

        outcome = await referrals.approve_all_pending(hospital)
        assert len(outcome.approved) == 2
        assert len(outcome.skipped) == 1
        assert set(outcome.approved) | set(outcome.skipped) == ids
        assert outcome.remaining_beds == 0

    async def test_list_filters(self, referrals, chain):
        a, b, h = chain
        first = await referrals.submit(a, h)
        second = await referrals.submit(b, h)
        await referrals.reject(first.id)
        pending = await referrals.list(status=ReferralStatus.PENDING)
        assert [r.id for r in pending] == [second.id]
        assert {r.id for r in await referrals.list(hospital_id=h)} == {first.id, second.id}
        assert [r.id for r in await referrals.list(source_id=a)] == [first.id]

    async def test_submit_rechecks_nodes_removed_after_snapshot(
        self, graph, referrals, chain, monkeypatch
    ):
        a, b, h = chain
        snapshot = graph.snapshot

        async def snapshot_then_remove_source():
            taken = await snapshot()
            await graph.remove_node(a)
            return taken

        monkeypatch.setattr(graph, "snapshot", snapshot_then_remove_source)
        with pytest.raises(UnknownNodeError):
            await referrals.submit(a, h)
        assert await referrals.list() == []

    async def test_insert_conflicts_are_classified(self, referrals, chain):
        a, b, h = chain
        await referrals.submit(a, h)
        assert isinstance(await referrals._insert_conflict(a, h), DuplicatePendingError)
        assert isinstance(await referrals._insert_conflict(a, 999), UnknownNodeError)
        assert await referrals._insert_conflict(b, h) is None

    @pytest.mark.parametrize("action", ["approve", "reject"])
    async def test_resolving_a_cascade_deleted_referral_is_not_found(
        self, db, graph, chain, monkeypatch, action
    ):
        a, b, h = chain
        repo = SqlReferralRepository(
            db, graph, config=ReferralConfig(revalidate_on_approve=False)
        )
        referral = await repo.submit(a, h)
        get = repo.get

        async def get_then_remove_source(referral_id):
            found = await get(referral_id)
            await graph.remove_node(a)
            return found

        monkeypatch.setattr(repo, "get", get_then_remove_source)
        with pytest.raises(ReferralNotFoundError):
            await getattr(repo, action)(referral.id)
        assert (await graph.get_node(h)).available_beds == 1

    async def test_resolving_twice_reports_current_status(self, referrals, chain):
        a, b, h = chain
        referral = await referrals.submit(a, h)
        await referrals.reject(referral.id)
        with pytest.raises(AlreadyResolvedError, match="rejected"):
            await referrals.reject(referral.id)
