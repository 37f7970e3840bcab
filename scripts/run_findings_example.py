"""
Run the findings pipeline on a small canned page analysis and save the
graph (JSON + DOT) and validation report.

The analysis tasks here return fixed findings so the run needs no API key.
Swap them for `FindingsAgent(...).as_task(...)` to analyse real data.

Usage:
    python scripts/run_findings_example.py
"""
import os
import sys
import json
import logging

from cwv_findings.core.errors import RetryableTaskError
from cwv_findings.core.config import AppConfig, SchedulerConfig
from cwv_findings.core.types import SignalSnapshot
from cwv_findings.analysis.causal_graph import export_to_dot, graph_to_dict
from cwv_findings.services.task_scheduler import AnalysisTask, TaskScheduler
from cwv_findings.orchestration.findings_pipeline_orchestrator import FindingsPipelineOrchestrator

OUT_DIR = ""
JSON_PATH = os.path.join(OUT_DIR, "findings_run.json")
DOT_PATH = os.path.join(OUT_DIR, "findings_graph.dot")

SIGNALS = SignalSnapshot(
    data={'entriesCount': 212, 'transferBytes': 2_400_000, 'unusedBytes': 410_000, 'unusedRatio': 0.42,
          'lcp': 4100, 'tbt': 480, 'cls': 0.18},
    psi={'renderBlocking': True, 'reduceUnusedJS': True, 'redirects': False},
)

PSI_FINDINGS = [
    {
        'id': 'psi-1', 'kind': 'bottleneck', 'metric': 'LCP',
        'description': 'Render-blocking script app.js delays first render',
        'evidence': {'source': 'psi.audits', 'reference': 'render-blocking-resources: /static/app.js 640 ms', 'confidence': 0.85},
        'estimatedImpact': {'reduction': 600, 'confidence': 0.7, 'calculation': '640 ms blocking, ~600 recoverable'},
    },
    {
        'id': 'psi-2', 'kind': 'opportunity', 'metric': 'CLS',
        'description': 'Hero images missing width and height attributes',
        'evidence': {'source': 'psi', 'reference': 'unsized-images: hero.webp shifts layout 0.12', 'confidence': 0.8},
        'estimatedImpact': {'reduction': 0.1, 'confidence': 0.7},
    },
]
COVERAGE_FINDINGS = [
    {
        'id': 'coverage-1', 'kind': 'waste', 'metric': 'LCP',
        'description': 'Unused JavaScript in app.js is parsed before render',
        'evidence': {'source': 'coverage', 'reference': '/static/app.js 310 KB unused (58%)', 'confidence': 0.8},
        'estimatedImpact': {'reduction': 5000, 'confidence': 0.6, 'calculation': 'removing 310 KB saves 5000 ms'},
    },
]


def flaky_har_task():
    raise RetryableTaskError("upstream timeout")


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = AppConfig()
    scheduler = TaskScheduler(SchedulerConfig(batch_size=2, batch_delay_seconds=0.0, max_attempts=2,
                                              base_retry_delay_seconds=0.1))
    tasks = [
        AnalysisTask(task_id='psi', run=lambda: PSI_FINDINGS, description='PSI audits'),
        AnalysisTask(task_id='coverage', run=lambda: COVERAGE_FINDINGS, gate_type='coverage'),
        AnalysisTask(task_id='har', run=flaky_har_task, gate_type='har'),
        AnalysisTask(task_id='code', run=lambda: [], gate_type='code'),
    ]
    try:
        orchestrator = FindingsPipelineOrchestrator(device_type='mobile', config=config, scheduler=scheduler)
        report = orchestrator.run(SIGNALS, tasks)

        output = {
            'device_type': report.device_type,
            'gating': {name: decision.to_dict() for name, decision in report.gating.items()},
            'skipped_tasks': report.skipped_tasks,
            'failed_tasks': report.failed_tasks,
            'dropped_findings': report.dropped_findings,
            'graph': graph_to_dict(report.graph),
            'root_cause_priorities': [p.__dict__ for p in report.root_cause_priorities],
            'validation': report.validation.to_dict(),
        }
        with open(JSON_PATH, "w") as f:
            json.dump(output, f, indent=2, default=str)
        with open(DOT_PATH, "w") as f:
            f.write(export_to_dot(report.graph))
        print(f"Saved run output to {JSON_PATH} and {DOT_PATH}")
    except Exception as e:
        logging.getLogger(__name__).exception("Run failed")
        print("Run failed:", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
