"""Tests for merge-key deduplication."""
from cwv_findings.analysis.deduplicator import deduplicate, merge_key


class TestMergeKey:

    def test_components(self, blocking_finding):
        assert merge_key(blocking_finding) == ('blocking-resource', 'LCP', 'static/app.js')

    def test_general_when_no_file(self, make_finding):
        finding = make_finding(description='Slow server response', reference='TTFB 900 ms on every load')
        assert merge_key(finding)[2] == 'general'


class TestDeduplicate:
    """Test suite for deduplicate."""

    def test_merges_same_issue_from_different_tasks(self, make_finding):
        a = make_finding(finding_id='psi-1', confidence=0.7, produced_by='psi')
        b = make_finding(finding_id='har-3', confidence=0.9, produced_by='har')
        result = deduplicate([a, b])
        assert [f.id for f in result.findings] == ['har-3']
        group = result.merge_groups[0]
        assert group.original_count == 2
        assert group.representative_id == 'har-3'
        assert group.member_ids == ['har-3', 'psi-1']
        assert group.task_ids == ['har', 'psi']

    def test_tie_keeps_first_seen(self, make_finding):
        a = make_finding(finding_id='a', confidence=0.8)
        b = make_finding(finding_id='b', confidence=0.8)
        assert deduplicate([a, b]).findings[0].id == 'a'
        assert deduplicate([b, a]).findings[0].id == 'b'

    def test_missing_confidence_loses(self, make_finding):
        a = make_finding(finding_id='a', confidence=None)
        b = make_finding(finding_id='b', confidence=0.1)
        assert deduplicate([a, b]).findings[0].id == 'b'

    def test_different_metric_not_merged(self, make_finding):
        a = make_finding(finding_id='a', metric='LCP')
        b = make_finding(finding_id='b', metric='FCP')
        assert len(deduplicate([a, b]).findings) == 2

    def test_different_path_not_merged(self, make_finding):
        a = make_finding(finding_id='a', reference='/static/app.js 640 ms')
        b = make_finding(finding_id='b', reference='/legacy/app.js 640 ms')
        assert len(deduplicate([a, b]).findings) == 2

    def test_output_sorted_by_merge_key(self, unused_code_finding, blocking_finding, image_sizing_finding):
        result = deduplicate([unused_code_finding, image_sizing_finding, blocking_finding])
        keys = [g.merge_key for g in result.merge_groups]
        assert keys == sorted(keys)
        assert [f.id for f in result.findings] == [g.representative_id for g in result.merge_groups]

    def test_empty(self):
        result = deduplicate([])
        assert result.findings == []
        assert result.merge_groups == []
