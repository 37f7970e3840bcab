import random
from dataclasses import replace

import pytest

from cwv_findings.analysis.deduplicator import deduplicate, merge_key

SEEDS = range(20)


def with_unique_confidence(findings):
    return [replace(f, evidence=replace(f.evidence, confidence=(i + 1) / 100)) for i, f in enumerate(findings)]


@pytest.mark.parametrize('seed', SEEDS)
def test_deduplication_is_idempotent(random_findings, seed):
    once = deduplicate(random_findings(seed, 25))
    twice = deduplicate(once.findings)
    assert [f.id for f in twice.findings] == [f.id for f in once.findings]
    assert all(group.original_count == 1 for group in twice.merge_groups)


@pytest.mark.parametrize('seed', SEEDS)
def test_order_does_not_change_result(random_findings, seed):
    findings = with_unique_confidence(random_findings(seed, 25))
    shuffled = list(findings)
    random.Random(seed).shuffle(shuffled)
    first, second = deduplicate(findings), deduplicate(shuffled)
    assert [f.id for f in first.findings] == [f.id for f in second.findings]
    assert [g.member_ids for g in first.merge_groups] == [g.member_ids for g in second.merge_groups]


@pytest.mark.parametrize('seed', SEEDS)
def test_every_finding_lands_in_one_group(random_findings, seed):
    findings = random_findings(seed, 25)
    result = deduplicate(findings)
    members = [m for group in result.merge_groups for m in group.member_ids]
    assert sorted(members) == sorted(f.id for f in findings)
    keys = [merge_key(f) for f in result.findings]
    assert len(keys) == len(set(keys))


@pytest.mark.parametrize('seed', SEEDS)
def test_representative_has_highest_confidence(random_findings, seed):
    findings = random_findings(seed, 25)
    by_id = {f.id: f for f in findings}
    score = lambda f: f.evidence.confidence if f.evidence.confidence is not None else -1
    for group in deduplicate(findings).merge_groups:
        best = max(score(by_id[m]) for m in group.member_ids)
        assert score(by_id[group.representative_id]) == best
