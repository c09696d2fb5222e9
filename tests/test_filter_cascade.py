# -*- coding: utf-8 -*-
"""Tests for FilterCascade construction, queries and serialisation."""

import json
import math
import random
import string

import pytest

from mlbf.bloom.bit_filter import BitFilter
from mlbf.cascade.filter_cascade import FilterCascade
from mlbf.errors import CascadeDepthExceeded, CascadeVerificationError, UnrecognizedArgument


def random_str(n: int = 12) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=n))


def make_sets(target_size: int, non_member_size: int, seed: int = 1):
    rng = random.Random(seed)
    pool = set()
    while len(pool) < target_size + non_member_size:
        pool.add("".join(rng.choices(string.ascii_lowercase, k=12)))
    pool = sorted(pool)
    rng.shuffle(pool)
    return pool[:target_size], pool[target_size:]


def filter_with(*items) -> BitFilter:
    f = BitFilter.create(10, 0.01)
    f.insert_many(items)
    return f


def test_parity_walk_stops_at_first_miss():
    x = b"query"
    empty = BitFilter.create(10, 0.01)

    assert FilterCascade([filter_with(x), empty]).contains(x)
    assert not FilterCascade([filter_with(x), filter_with(x), empty]).contains(x)
    assert FilterCascade([filter_with(x), filter_with(x), filter_with(x)]).contains(x)
    # later hits do not count once a level rejects
    assert not FilterCascade([empty, filter_with(x), filter_with(x)]).contains(x)
    assert FilterCascade([filter_with(x), empty, filter_with(x), filter_with(x)]).contains(x)


def test_depth():
    x = "query"
    empty = BitFilter.create(10, 0.01)
    cascade = FilterCascade([filter_with(x), filter_with(x), empty, filter_with(x)])
    assert cascade.depth(x) == 2
    assert FilterCascade().depth(x) == 0
    assert not FilterCascade().contains(x)


@pytest.mark.parametrize("fp_rate", [0.5, 0.1, 0.01])
def test_cascade_recall(fp_rate):
    target, non_members = make_sets(300, 5000)
    cascade = FilterCascade.build(target, target + non_members, len(target), len(non_members), fp_rate)
    for x in target:
        assert cascade.contains(x)
    assert len(cascade) >= 2


@pytest.mark.parametrize("fp_rate", [0.5, 0.1])
def test_cascade_rejects_known_non_members(fp_rate):
    target, non_members = make_sets(300, 5000, seed=2)
    cascade = FilterCascade.build(target, non_members, len(target), len(non_members), fp_rate)
    assert sum(cascade.contains(x) for x in non_members) <= 1
    assert cascade.verify(target, non_members) <= 1


def test_cascade_rejection_bound_on_unseen():
    random.seed(3)
    fp_rate = 0.1
    target, non_members = make_sets(200, 2000, seed=3)
    cascade = FilterCascade.build(target, non_members, len(target), len(non_members), fp_rate)

    known = set(target) | set(non_members)
    queries = [p for p in (random_str(16) for _ in range(1000)) if p not in known]
    observed = sum(cascade.contains(p) for p in queries) / len(queries)
    assert observed < 2 * fp_rate


def test_level_sizing():
    target, non_members = make_sets(100, 2000, seed=4)
    r_cap, s_cap, p = 120, 2500, 0.1
    cascade = FilterCascade.build(target, non_members, r_cap, s_cap, p)

    top = cascade.filters[0]
    expected = BitFilter.create(r_cap, p)
    assert top.byte_len == expected.byte_len
    assert top.hash_func_count == expected.hash_func_count
    assert all(top.contains(x) for x in target)

    assert cascade.filters[1].elements >= math.ceil(s_cap * p)
    for i, f in enumerate(cascade.filters):
        assert f.level == i
        assert f.fp_rate == p


def test_empty_target():
    _, non_members = make_sets(0, 500, seed=5)
    cascade = FilterCascade.build([], non_members, 10, 500, 0.1)
    assert len(cascade) == 2
    assert not any(cascade.contains(x) for x in non_members)
    assert cascade.build_events[-1].startswith("stop:")


def test_empty_candidates():
    target, _ = make_sets(50, 0, seed=6)
    cascade = FilterCascade.build(target, [], 50, 1000, 0.1)
    assert len(cascade) == 2
    assert all(cascade.contains(x) for x in target)


def test_invalid_fp_rate():
    with pytest.raises(ValueError):
        FilterCascade.build(["a"], ["b"], 1, 1, 0.0)
    with pytest.raises(ValueError):
        FilterCascade.build(["a"], ["b"], 1, 1, 1.0)


def test_depth_cap_raises():
    target, non_members = make_sets(200, 2000, seed=7)
    with pytest.raises(CascadeDepthExceeded) as exc:
        FilterCascade.build(target, non_members, len(target), len(non_members), 0.5, max_levels=2)
    assert exc.value.max_levels == 2
    assert exc.value.target_left > 0


def test_verify_reports_false_negative():
    cascade = FilterCascade([BitFilter.create(10, 0.01)])
    with pytest.raises(CascadeVerificationError):
        cascade.verify([b"missing"], [])


def test_verbose_build_prints_events(capsys):
    target, non_members = make_sets(20, 200, seed=8)
    cascade = FilterCascade.build(target, non_members, 20, 200, 0.5, verbose=True)
    out = capsys.readouterr().out
    assert "[Cascade Build] level=0 side=target" in out
    assert len(cascade.build_events) == len(cascade) + 1


def test_sizes():
    target, non_members = make_sets(100, 1000, seed=9)
    cascade = FilterCascade.build(target, non_members, 100, 1000, 0.5)
    assert cascade.layer_count() == len(cascade.filters)
    assert cascade.byte_size() == sum(len(f.data) for f in cascade.filters)
    assert cascade.bit_count() == cascade.byte_size() * 8


def test_record_round_trip():
    target, non_members = make_sets(100, 1000, seed=10)
    cascade = FilterCascade.build(target, non_members, 100, 1000, 0.5)

    record = cascade.to_record()
    assert [f["level"] for f in record["filters"]] == list(range(len(cascade)))
    restored = FilterCascade.from_record(record)
    assert restored == cascade
    assert all(restored.contains(x) for x in target)

    assert FilterCascade.from_record(FilterCascade().to_record()) == FilterCascade()


def test_json_round_trip():
    target, non_members = make_sets(50, 500, seed=11)
    cascade = FilterCascade.build(target, non_members, 50, 500, 0.5)
    text = cascade.to_json()
    assert isinstance(json.loads(text)["filters"][0]["data"], str)
    restored = FilterCascade.from_json(text)
    assert restored == cascade
    assert [restored.contains(x) for x in non_members] == [cascade.contains(x) for x in non_members]


def test_from_record_rejects_bad_shape():
    with pytest.raises(UnrecognizedArgument):
        FilterCascade.from_record({"levels": []})
    with pytest.raises(UnrecognizedArgument):
        FilterCascade.from_record([])


@pytest.mark.parametrize("fp_rate", [0.5, 0.3, 0.2, 0.1])
@pytest.mark.parametrize("seed", range(12))
def test_build_terminates_with_full_recall(fp_rate, seed):
    target, non_members = make_sets(100, 1000, seed=100 + seed)
    cascade = FilterCascade.build(target, non_members, len(target), len(non_members), fp_rate, max_levels=500)
    assert all(cascade.contains(x) for x in target)
    assert sum(cascade.contains(x) for x in non_members) <= 1
    assert cascade.build_events[-1].startswith("stop:")


def test_stalled_side_gets_a_larger_level():
    target, non_members = make_sets(100, 1000, seed=42)
    cascade = FilterCascade.build(target, non_members, 100, 1000, 0.5)
    inserted = [int(e.split("inserted=")[1].split()[0]) for e in cascade.build_events[:-1]]
    # same side is two levels back; an unchanged member count means a bigger filter
    for i in range(2, len(cascade.filters)):
        if inserted[i] and inserted[i] >= inserted[i - 2]:
            assert cascade.filters[i].byte_len > cascade.filters[i - 2].byte_len


def test_default_rate_builds():
    target, non_members = make_sets(100, 1000, seed=43)
    cascade = FilterCascade.build(target, target + non_members, len(target), len(non_members))
    assert cascade.filters[0].fp_rate == 0.5
    assert cascade.verify(target, non_members) <= 1
