from datetime import datetime
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

# Finding kinds (closed set)
KIND_BOTTLENECK = "bottleneck"
KIND_WASTE = "waste"
KIND_OPPORTUNITY = "opportunity"
FINDING_KINDS = frozenset({KIND_BOTTLENECK, KIND_WASTE, KIND_OPPORTUNITY})

# Edge relationships (closed set), directed cause -> effect
REL_BLOCKS = "blocks"
REL_DELAYS = "delays"
REL_CAUSES = "causes"
REL_CONTRIBUTES = "contributes"
REL_DEPENDS = "depends"
REL_DUPLICATES = "duplicates"
REL_COMPOUNDS = "compounds"
RELATIONSHIPS = frozenset({
    REL_BLOCKS, REL_DELAYS, REL_CAUSES, REL_CONTRIBUTES,
    REL_DEPENDS, REL_DUPLICATES, REL_COMPOUNDS,
})

# Finding kind -> relationship of the finding's edge to its metric node
KIND_TO_RELATIONSHIP = {
    KIND_BOTTLENECK: REL_BLOCKS,
    KIND_WASTE: REL_DELAYS,
    KIND_OPPORTUNITY: REL_CONTRIBUTES,
}

NODE_TYPE_METRIC = "metric"
NODE_TYPE_FINDING = "finding"


# --- Findings
@dataclass(frozen=True)
class Evidence:
    """Where a finding's claim comes from."""
    source: str
    reference: str = ""
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "reference": self.reference, "confidence": self.confidence}


@dataclass(frozen=True)
class EstimatedImpact:
    """Claimed improvement for the finding's metric, in the metric's own units."""
    reduction: float = 0.0
    confidence: Optional[float] = None
    calculation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"reduction": self.reduction, "confidence": self.confidence, "calculation": self.calculation}


@dataclass(frozen=True)
class Reasoning:
    observation: str = ""
    diagnosis: str = ""
    mechanism: str = ""
    solution: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "observation": self.observation,
            "diagnosis": self.diagnosis,
            "mechanism": self.mechanism,
            "solution": self.solution,
        }


@dataclass(frozen=True)
class Finding:
    """
    Structured observation produced by one analysis task.

    Immutable once produced. Evidence and impact may be absent; the
    validator reports that as an error rather than failing.
    """
    id: str
    kind: str
    metric: str
    description: str
    evidence: Optional[Evidence] = None
    estimated_impact: Optional[EstimatedImpact] = None
    reasoning: Optional[Reasoning] = None
    is_root_cause_hint: bool = False
    produced_by: str = ""

    @property
    def evidence_confidence(self) -> Optional[float]:
        return self.evidence.confidence if self.evidence is not None else None

    @property
    def reference(self) -> str:
        return (self.evidence.reference or "") if self.evidence is not None else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "metric": self.metric,
            "description": self.description,
            "evidence": self.evidence.to_dict() if self.evidence else None,
            "estimated_impact": self.estimated_impact.to_dict() if self.estimated_impact else None,
            "reasoning": self.reasoning.to_dict() if self.reasoning else None,
            "is_root_cause_hint": self.is_root_cause_hint,
            "produced_by": self.produced_by,
        }


# --- Gating
@dataclass
class SignalSnapshot:
    """Measured values plus boolean audit flags (True = problem detected)."""
    data: Dict[str, Any] = field(default_factory=dict)
    psi: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SignalResult:
    name: str
    passed: bool
    value: Any = None
    threshold: Any = None
    operator: Optional[str] = None


@dataclass
class GatingDecision:
    task_type: str
    should_run: bool
    signals_passed: int
    signals_total: int
    reason: str
    signals: List[SignalResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_type": self.task_type,
            "should_run": self.should_run,
            "signals_passed": self.signals_passed,
            "signals_total": self.signals_total,
            "reason": self.reason,
        }


# --- Deduplication
@dataclass
class MergeGroup:
    """Findings collapsed into one representative under a shared merge key."""
    merge_key: tuple
    representative_id: str
    original_count: int
    member_ids: List[str] = field(default_factory=list)
    task_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "merge_key": list(self.merge_key),
            "representative_id": self.representative_id,
            "original_count": self.original_count,
            "member_ids": self.member_ids,
            "task_ids": self.task_ids,
        }


@dataclass
class DeduplicationResult:
    findings: List[Finding] = field(default_factory=list)
    merge_groups: List[MergeGroup] = field(default_factory=list)


# --- Causal graph
@dataclass
class MetricNode:
    id: str
    metric: str
    current_value: Optional[float] = None
    target_threshold: Optional[float] = None


@dataclass
class CausalNode:
    """
    Graph wrapper around either a Finding or a MetricNode.

    depth stays None until the graph is fully built, and remains None for
    nodes that cannot reach any metric.
    """
    id: str
    node_type: str
    finding: Optional[Finding] = None
    metric_node: Optional[MetricNode] = None
    causes: List[str] = field(default_factory=list)
    caused_by: List[str] = field(default_factory=list)
    depth: Optional[int] = None
    is_root_cause: bool = False

    @property
    def is_metric(self) -> bool:
        return self.node_type == NODE_TYPE_METRIC

    @property
    def metric(self) -> Optional[str]:
        if self.finding is not None:
            return self.finding.metric
        if self.metric_node is not None:
            return self.metric_node.metric
        return None

    @property
    def description(self) -> str:
        if self.finding is not None:
            return self.finding.description
        if self.metric_node is not None:
            return f"{self.metric_node.metric} metric"
        return self.id

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.node_type,
            "causes": list(self.causes),
            "caused_by": list(self.caused_by),
            "depth": self.depth,
            "is_root_cause": self.is_root_cause,
        }
        if self.finding is not None:
            data["finding"] = self.finding.to_dict()
        if self.metric_node is not None:
            data["metric"] = self.metric_node.metric
            data["current_value"] = self.metric_node.current_value
            data["target_threshold"] = self.metric_node.target_threshold
        return data


@dataclass(frozen=True)
class CausalEdge:
    source: str
    target: str
    relationship: str
    strength: float
    mechanism: str = ""

    @property
    def key(self) -> tuple:
        return (self.source, self.target, self.relationship)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.source,
            "to": self.target,
            "relationship": self.relationship,
            "strength": self.strength,
            "mechanism": self.mechanism,
        }


@dataclass
class CausalGraph:
    nodes: Dict[str, CausalNode] = field(default_factory=dict)
    edges: List[CausalEdge] = field(default_factory=list)
    root_causes: List[str] = field(default_factory=list)
    symptoms: List[str] = field(default_factory=list)
    critical_paths: List[List[str]] = field(default_factory=list)


@dataclass
class RootCausePriority:
    finding_id: str
    description: str
    total_impact: float
    affected_findings: List[str] = field(default_factory=list)
    depth: Optional[int] = None


# --- Validation
@dataclass
class ValidationResult:
    finding_id: str
    is_valid: bool
    confidence: float
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    adjustments: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        adjustments = {
            key: value.to_dict() if hasattr(value, "to_dict") else value
            for key, value in self.adjustments.items()
        }
        return {
            "finding_id": self.finding_id,
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "warnings": self.warnings,
            "errors": self.errors,
            "adjustments": adjustments,
        }


@dataclass
class BlockedFinding:
    finding: Finding
    reasons: List[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class ValidationReport:
    """Disposition of every finding: approved, adjusted or blocked."""
    approved: List[Finding] = field(default_factory=list)
    adjusted: List[Finding] = field(default_factory=list)
    blocked: List[BlockedFinding] = field(default_factory=list)
    results: Dict[str, ValidationResult] = field(default_factory=dict)
    summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def final_findings(self) -> List[Finding]:
        return self.approved + self.adjusted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approved": [f.to_dict() for f in self.approved],
            "adjusted": [f.to_dict() for f in self.adjusted],
            "blocked": [
                {"finding": b.finding.to_dict(), "reasons": b.reasons, "confidence": b.confidence}
                for b in self.blocked
            ],
            "summary": self.summary,
        }


# --- Pipeline
@dataclass
class PipelineReport:
    """Everything one run hands to the downstream synthesis step."""
    device_type: str
    gating: Dict[str, GatingDecision] = field(default_factory=dict)
    skipped_tasks: List[str] = field(default_factory=list)
    failed_tasks: Dict[str, str] = field(default_factory=dict)
    dropped_findings: List[str] = field(default_factory=list)
    renamed_findings: Dict[str, str] = field(default_factory=dict)
    deduplication: Optional[DeduplicationResult] = None
    graph: Optional[CausalGraph] = None
    graph_summary: Dict[str, Any] = field(default_factory=dict)
    root_cause_priorities: List[RootCausePriority] = field(default_factory=list)
    validation: Optional[ValidationReport] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
