from __future__ import annotations

import asyncio

import pytest

from commentwatch.core.fanout import HierarchicalFanOut, bounded_flat_map
from commentwatch.core.models import FetchStats

from fakes import FakeApi, make_account, make_claim, make_comment


async def _collect(stream) -> list:
    return [item async for item in stream]


def _triples(observations) -> set[tuple[str, str, str]]:
    return {(o.account.id, o.claim.id, o.comment.id) for o in observations}


def test_fanout_flattens_the_whole_hierarchy() -> None:
    api = FakeApi(
        accounts=[make_account("a1"), make_account("a2")],
        claims={
            "a1": [make_claim("k1"), make_claim("k2")],
            "a2": [make_claim("k3")],
        },
        comments={
            "k1": [make_comment(f"c{i}", "k1") for i in range(5)],
            "k2": [make_comment("c10", "k2")],
            "k3": [make_comment("c20", "k3"), make_comment("c21", "k3")],
        },
    )

    observations = asyncio.run(_collect(HierarchicalFanOut(api, page_size=2, concurrency=2)))

    assert _triples(observations) == {
        ("a1", "k1", "c0"),
        ("a1", "k1", "c1"),
        ("a1", "k1", "c2"),
        ("a1", "k1", "c3"),
        ("a1", "k1", "c4"),
        ("a1", "k2", "c10"),
        ("a2", "k3", "c20"),
        ("a2", "k3", "c21"),
    }
    assert len(observations) == 8
    for observation in observations:
        assert observation.comment.claim_id == observation.claim.id


def test_fanout_bounds_outstanding_list_requests() -> None:
    claims = [make_claim(f"k{i}") for i in range(12)]
    api = FakeApi(
        accounts=[make_account("a1")],
        claims={"a1": claims},
        comments={claim.id: [make_comment(f"{claim.id}-c{i}", claim.id) for i in range(6)] for claim in claims},
        delay=0.005,
    )

    observations = asyncio.run(_collect(HierarchicalFanOut(api, page_size=2, concurrency=3)))

    assert len(observations) == 12 * 6
    assert api.max_in_flight["claims"] <= 3
    assert api.max_in_flight["comments"] <= 3
    assert api.max_in_flight["comments"] >= 2


def test_failed_page_only_affects_its_own_branch() -> None:
    api = FakeApi(
        accounts=[make_account("a1")],
        claims={"a1": [make_claim("k1"), make_claim("k2")]},
        comments={
            "k1": [make_comment(f"k1-c{i}", "k1") for i in range(4)],
            "k2": [make_comment(f"k2-c{i}", "k2") for i in range(4)],
        },
        failing={("comments", "k1", 2)},
    )
    stats = FetchStats()

    observations = asyncio.run(_collect(HierarchicalFanOut(api, page_size=2, concurrency=2, stats=stats)))

    comment_ids = {o.comment.id for o in observations}
    assert comment_ids == {"k1-c0", "k1-c1", "k2-c0", "k2-c1", "k2-c2", "k2-c3"}
    assert stats.failed == {"comments": 1}


def test_failed_account_page_drops_its_accounts_only() -> None:
    api = FakeApi(
        accounts=[make_account("a1"), make_account("a2")],
        claims={"a1": [make_claim("k1")], "a2": [make_claim("k2")]},
        comments={"k1": [make_comment("c1", "k1")], "k2": [make_comment("c2", "k2")]},
        failing={("accounts", "", 2)},
    )

    observations = asyncio.run(_collect(HierarchicalFanOut(api, page_size=1, concurrency=2)))

    assert _triples(observations) == {("a1", "k1", "c1")}


def test_fanout_defaults_to_cpu_count(monkeypatch) -> None:
    monkeypatch.setattr("os.cpu_count", lambda: 7)
    fanout = HierarchicalFanOut(FakeApi(accounts=[]), page_size=10)
    assert fanout.concurrency == 7


def test_bounded_flat_map_limits_running_expansions() -> None:
    running = 0
    peak = 0

    async def source():
        for value in range(10):
            yield value

    async def expand(value: int):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        try:
            await asyncio.sleep(0.001)
            yield value
            yield value * 100
        finally:
            running -= 1

    results = asyncio.run(_collect(bounded_flat_map(source(), expand, limit=4)))

    assert sorted(results) == sorted(list(range(10)) + [v * 100 for v in range(10)])
    assert peak <= 4


def test_bounded_flat_map_propagates_expansion_errors() -> None:
    async def source():
        for value in range(3):
            yield value

    async def expand(value: int):
        if value == 1:
            raise RuntimeError("expansion exploded")
        yield value

    with pytest.raises(RuntimeError, match="expansion exploded"):
        asyncio.run(_collect(bounded_flat_map(source(), expand, limit=2)))


def test_bounded_flat_map_rejects_zero_limit() -> None:
    async def source():
        yield 1

    async def expand(value: int):
        yield value

    with pytest.raises(ValueError):
        asyncio.run(_collect(bounded_flat_map(source(), expand, limit=0)))
