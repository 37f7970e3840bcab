"""Tests for FindingsPipelineOrchestrator."""
from unittest.mock import Mock, patch

import pytest

from cwv_findings.core.config import AppConfig, SchedulerConfig
from cwv_findings.core.errors import ConfigurationError, RetryableTaskError, TerminalTaskError
from cwv_findings.core.types import SignalSnapshot
from cwv_findings.services.task_scheduler import AnalysisTask, TaskScheduler
from cwv_findings.orchestration.findings_pipeline_orchestrator import FindingsPipelineOrchestrator

PSI_FINDINGS = [
    {
        'id': 'psi-1', 'kind': 'bottleneck', 'metric': 'LCP',
        'description': 'Render-blocking script app.js delays first render',
        'evidence': {'source': 'psi.audits', 'reference': 'render-blocking-resources: /static/app.js 640 ms',
                     'confidence': 0.85},
        'estimatedImpact': {'reduction': 600, 'confidence': 0.7},
    },
    {'id': 'junk'},
]
COVERAGE_FINDINGS = [
    {
        'id': 'coverage-1', 'kind': 'waste', 'metric': 'LCP',
        'description': 'Unused JavaScript in app.js is parsed before render',
        'evidence': {'source': 'coverage', 'reference': '/static/app.js 310 KB unused (58%)', 'confidence': 0.8},
        'estimatedImpact': {'reduction': 5000, 'confidence': 0.6},
    },
]


@pytest.fixture
def signals():
    # har and code are gated off, coverage runs
    return SignalSnapshot(data={'entriesCount': 20, 'unusedBytes': 410_000, 'lcp': 4100}, psi={})


@pytest.fixture
def scheduler():
    config = SchedulerConfig(batch_size=2, batch_delay_seconds=0.0, max_attempts=3, base_retry_delay_seconds=0.0)
    return TaskScheduler(config, sleep=Mock())


@pytest.fixture
def orchestrator(scheduler):
    return FindingsPipelineOrchestrator(device_type='mobile', config=AppConfig(), scheduler=scheduler)


@pytest.fixture
def tasks():
    return [
        AnalysisTask(task_id='psi', run=lambda: PSI_FINDINGS),
        AnalysisTask(task_id='coverage', run=lambda: {'findings': COVERAGE_FINDINGS}, gate_type='coverage'),
        AnalysisTask(task_id='har', run=Mock(return_value=[]), gate_type='har'),
        AnalysisTask(task_id='code', run=Mock(return_value=[]), gate_type='code'),
        AnalysisTask(task_id='broken', run=Mock(side_effect=TerminalTaskError('bad payload'))),
        AnalysisTask(task_id='flaky', run=Mock(side_effect=[RetryableTaskError('upstream timeout'), []])),
    ]


class TestFindingsPipelineOrchestrator:
    """Test suite for FindingsPipelineOrchestrator."""

    def test_initialization(self, orchestrator):
        assert orchestrator.device_type == 'mobile'
        assert orchestrator.gate.device_type == 'mobile'

    def test_run_full_pipeline(self, orchestrator, signals, tasks):
        report = orchestrator.run(signals, tasks)

        assert set(report.gating) == {'coverage', 'har', 'code'}
        assert report.skipped_tasks == ['har', 'code']
        tasks[2].run.assert_not_called()
        tasks[3].run.assert_not_called()

        assert report.failed_tasks == {'broken': 'ANALYSIS_FAILED: bad payload'}
        assert tasks[5].run.call_count == 2

        assert len(report.dropped_findings) == 1
        assert 'junk' in report.dropped_findings[0]

        assert [f.id for f in report.deduplication.findings] == ['psi-1', 'coverage-1']
        assert report.graph.root_causes == ['coverage-1']
        assert report.graph_summary['total_nodes'] == 3

        assert [f.id for f in report.validation.approved] == ['psi-1']
        assert [f.id for f in report.validation.adjusted] == ['coverage-1']
        assert report.validation.adjusted[0].estimated_impact.reduction == 2000

        assert report.root_cause_priorities[0].finding_id == 'coverage-1'
        assert report.root_cause_priorities[0].total_impact == 600

    def test_metric_values_override_snapshot(self, orchestrator, signals):
        tasks = [AnalysisTask(task_id='psi', run=lambda: PSI_FINDINGS[:1])]
        report = orchestrator.run(signals, tasks, metric_values={'FCP': 3000})
        assert 'metric-fcp' in report.graph.nodes
        assert 'metric-lcp' not in report.graph.nodes

    def test_metric_values_from_dict_signals(self, orchestrator):
        tasks = [AnalysisTask(task_id='psi', run=lambda: PSI_FINDINGS[:1])]
        report = orchestrator.run({'data': {'lcp': 4100, 'cls': 0.2}, 'psi': {}}, tasks)
        assert {'metric-lcp', 'metric-cls'} <= set(report.graph.nodes)

    def test_unexpected_task_output_dropped(self, orchestrator, signals):
        tasks = [
            AnalysisTask(task_id='text', run=lambda: 'no findings today'),
            AnalysisTask(task_id='nothing', run=lambda: None),
        ]
        report = orchestrator.run(signals, tasks)
        assert report.dropped_findings == ['Task text returned str, expected a list of findings']
        assert report.deduplication.findings == []
        assert report.validation.final_findings == []

    def test_shared_finding_ids_kept_apart(self, orchestrator, signals):
        lcp = dict(PSI_FINDINGS[0], id='f-1')
        cls = {
            'id': 'f-1', 'kind': 'bottleneck', 'metric': 'CLS',
            'description': 'Images missing width and height in index.html',
            'evidence': {'source': 'html', 'reference': 'index.html: 4 <img> without width, 0.12 shift',
                         'confidence': 0.7},
            'estimatedImpact': {'reduction': 0.1, 'confidence': 0.6},
        }
        tasks = [AnalysisTask(task_id='psi', run=lambda: [lcp]), AnalysisTask(task_id='html', run=lambda: [cls])]
        report = orchestrator.run(signals, tasks, metric_values={'LCP': 4100, 'CLS': 0.3})

        assert report.renamed_findings == {'html:f-1': 'f-1'}
        assert {'f-1', 'html:f-1'} <= set(report.graph.nodes)
        assert report.graph.nodes['html:f-1'].finding.metric == 'CLS'
        metric_edges = {(e.source, e.target) for e in report.graph.edges if e.target.startswith('metric-')}
        assert {('f-1', 'metric-lcp'), ('html:f-1', 'metric-cls')} <= metric_edges
        assert set(report.validation.results) == {'f-1', 'html:f-1'}

    def test_no_tasks(self, orchestrator, signals):
        report = orchestrator.run(signals, [])
        assert report.failed_tasks == {}
        assert report.graph.root_causes == []

    def test_unknown_gate_type_raises(self, orchestrator, signals):
        tasks = [AnalysisTask(task_id='fonts', run=lambda: [], gate_type='fonts')]
        with pytest.raises(ConfigurationError):
            orchestrator.run(signals, tasks)

    def test_merge_error_handling(self, orchestrator, signals, tasks):
        with patch('cwv_findings.orchestration.findings_pipeline_orchestrator.deduplicate',
                   side_effect=ValueError('boom')):
            with pytest.raises(RuntimeError, match='Merge failed: boom'):
                orchestrator.run(signals, tasks)

    def test_graph_error_handling(self, orchestrator, signals, tasks):
        with patch.object(orchestrator.graph_builder, 'build', side_effect=Exception('Graph error')):
            with pytest.raises(RuntimeError, match='Graph build failed'):
                orchestrator.run(signals, tasks)

    def test_validation_error_handling(self, orchestrator, signals, tasks):
        with patch.object(orchestrator.validation_policy, 'apply', side_effect=Exception('Validation error')):
            with pytest.raises(RuntimeError, match='Validation failed'):
                orchestrator.run(signals, tasks)
