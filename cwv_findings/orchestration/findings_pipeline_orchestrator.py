import logging
from typing import Any, Dict, List, Optional, Union

from cwv_findings.core.config import AppConfig
from cwv_findings.core.types import Finding, GatingDecision, PipelineReport, SignalSnapshot
from cwv_findings.analysis.signal_gate import SignalGate
from cwv_findings.analysis.finding_parser import parse_findings, unique_ids
from cwv_findings.analysis.deduplicator import deduplicate
from cwv_findings.analysis.causal_graph import prioritize_root_causes, summarize_graph
from cwv_findings.analysis.causal_graph_builder import CausalGraphBuilder
from cwv_findings.analysis.validation_policy import ValidationPolicy
from cwv_findings.services.signal_extractor import SignalExtractor
from cwv_findings.services.task_scheduler import AnalysisTask, TaskOutcome, TaskScheduler

logger = logging.getLogger(__name__)


class FindingsPipelineOrchestrator:
    """
    Orchestrates one findings run end to end.

    Pipeline stages:
    1. Gating: decide once per task type whether its tasks run
    2. Scheduling: run the surviving tasks in batches with retries
    3. Merge: parse raw findings, drop malformed ones, deduplicate
    4. Graph: build the causal graph against current metric values
    5. Validation: classify, calibrate and dispose of every finding

    Stage 3 starts only after every scheduled task has settled.
    """

    def __init__(self, device_type: Optional[str] = None, config: Optional[AppConfig] = None,
                 scheduler: Optional[TaskScheduler] = None):
        self.config = config or AppConfig()
        self.device_type = device_type or self.config.gating.device_type
        logger.debug("Initializing FindingsPipelineOrchestrator", extra={"device": self.device_type})
        self.gate = SignalGate(self.device_type)
        self.scheduler = scheduler or TaskScheduler(self.config.scheduler)
        self.graph_builder = CausalGraphBuilder(self.config.graph)
        self.validation_policy = ValidationPolicy(self.config.validation)

    def run(
        self,
        signals: Union[SignalSnapshot, Dict[str, Any]],
        tasks: List[AnalysisTask],
        metric_values: Optional[Dict[str, float]] = None,
    ) -> PipelineReport:
        """
        Execute the findings pipeline.

        Args:
            signals: Signal snapshot used for gating
            tasks: Analysis tasks; tasks without a gate_type always run
            metric_values: Current metric values; derived from the snapshot when omitted

        Returns:
            PipelineReport with gating decisions, graph and validation results

        Raises:
            ConfigurationError: A task names an unknown gate type
            RuntimeError: The graph or validation stage failed
        """
        report = PipelineReport(device_type=self.device_type)
        logger.info("Running findings pipeline", extra={"device": self.device_type, "task_count": len(tasks)})

        logger.info("[1/5] Gating tasks...")
        runnable = self._gate(signals, tasks, report)
        logger.info("Gating complete", extra={"runnable": len(runnable), "skipped": len(report.skipped_tasks)})

        logger.info("[2/5] Running analysis tasks...")
        outcomes = self.scheduler.run(runnable)
        for outcome in outcomes:
            if outcome.result.is_err():
                error = outcome.result.error
                report.failed_tasks[outcome.task.task_id] = f"{error.code}: {error.message}"
        logger.info("Tasks complete", extra={"succeeded": len(outcomes) - len(report.failed_tasks),
                                             "failed": len(report.failed_tasks)})

        logger.info("[3/5] Merging findings...")
        try:
            findings = self._collect_findings(outcomes, report)
            report.deduplication = deduplicate(findings)
            logger.info("Merge complete", extra={"raw": len(findings),
                                                 "merged": len(report.deduplication.findings)})
        except Exception as e:
            logger.exception("Merge failed")
            raise RuntimeError(f"Merge failed: {e}") from e

        logger.info("[4/5] Building causal graph...")
        try:
            if metric_values is None:
                metric_values = SignalExtractor.metric_values(self._as_snapshot(signals))
            report.graph = self.graph_builder.build(report.deduplication.findings, metric_values)
            report.graph_summary = summarize_graph(report.graph)
            logger.info("Graph complete", extra=report.graph_summary)
        except Exception as e:
            logger.exception("Graph build failed")
            raise RuntimeError(f"Graph build failed: {e}") from e

        logger.info("[5/5] Validating findings...")
        try:
            report.validation = self.validation_policy.apply(report.deduplication.findings, report.graph)
            report.root_cause_priorities = prioritize_root_causes(report.graph)
            logger.info("Validation complete", extra=report.validation.summary)
        except Exception as e:
            logger.exception("Validation failed")
            raise RuntimeError(f"Validation failed: {e}") from e

        logger.info("Findings pipeline complete")
        return report

    def _gate(self, signals, tasks: List[AnalysisTask], report: PipelineReport) -> List[AnalysisTask]:
        decisions: Dict[str, GatingDecision] = {}
        runnable = []
        for task in tasks:
            if task.gate_type is None:
                runnable.append(task)
                continue
            if task.gate_type not in decisions:
                decisions[task.gate_type] = self.gate.decide(task.gate_type, signals)
            decision = decisions[task.gate_type]
            if decision.should_run:
                runnable.append(task)
            else:
                logger.info("Skipping task %s: %s", task.task_id, decision.reason)
                report.skipped_tasks.append(task.task_id)
        report.gating = decisions
        return runnable

    @staticmethod
    def _collect_findings(outcomes: List[TaskOutcome], report: PipelineReport) -> List[Finding]:
        findings: List[Finding] = []
        for outcome in outcomes:
            if outcome.result.is_err():
                continue
            value = outcome.result.value
            if isinstance(value, dict):
                value = value.get('findings')
            if value is None:
                continue
            if not isinstance(value, list):
                warning = f"Task {outcome.task.task_id} returned {type(value).__name__}, expected a list of findings"
                logger.warning(warning)
                report.dropped_findings.append(warning)
                continue
            parsed, warnings = parse_findings(value, produced_by=outcome.task.task_id)
            findings.extend(parsed)
            report.dropped_findings.extend(warnings)
        findings, report.renamed_findings = unique_ids(findings)
        return findings

    @staticmethod
    def _as_snapshot(signals: Union[SignalSnapshot, Dict[str, Any], None]) -> SignalSnapshot:
        if isinstance(signals, SignalSnapshot):
            return signals
        signals = signals or {}
        return SignalSnapshot(data=signals.get('data') or {}, psi=signals.get('psi') or {})
