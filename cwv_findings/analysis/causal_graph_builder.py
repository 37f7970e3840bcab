import logging
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Set, Tuple

from cwv_findings.core.config import GraphConfig
from cwv_findings.core.thresholds import GRAPH_METRIC_THRESHOLDS
from cwv_findings.core.types import (
    KIND_BOTTLENECK,
    KIND_TO_RELATIONSHIP,
    KIND_WASTE,
    REL_CAUSES,
    REL_COMPOUNDS,
    REL_CONTRIBUTES,
    REL_DEPENDS,
    REL_DUPLICATES,
    CausalEdge,
    CausalGraph,
    Finding,
)
from cwv_findings.analysis import causal_graph as cg
from cwv_findings.analysis.finding_classifier import (
    TYPE_BLOCKING_RESOURCE,
    TYPE_FONT_FORMAT,
    TYPE_FONT_PRELOAD,
    TYPE_INLINE_CSS,
    TYPE_RESOURCE_HINTS,
    TYPE_RESOURCE_PRELOAD,
    TYPE_UNUSED_CODE,
    classify,
    extract_file_name,
)

logger = logging.getLogger(__name__)


class CausalGraphBuilder:
    """
    Builds the causal graph for one run: metric nodes, finding nodes,
    finding -> metric edges, pairwise relationships between findings, then
    depth / root-cause / symptom / critical-path analysis.
    """

    # ============================================================================
    # EDGE DEFAULTS
    # ============================================================================
    DEFAULT_METRIC_EDGE_STRENGTH = 0.7
    DUPLICATE_STRENGTH = 1.0
    WASTE_TO_BOTTLENECK_STRENGTH = 0.8
    CO_LOCATED_STRENGTH = 0.6
    CASCADE_STRENGTH = 0.7
    TIMING_STRENGTH = 0.65

    # ============================================================================
    # DUPLICATE DETECTION
    # ============================================================================
    DUPLICATE_KEYWORDS = ('hero', 'image', 'font', 'script', 'css', 'render-blocking', 'unused', 'preload')
    DUPLICATE_MIN_SHARED_KEYWORDS = 3

    # ============================================================================
    # RELATIONSHIP TABLES
    # ============================================================================
    # Semantic type pairs allowed to link when they reference the same file
    COMPATIBLE_TYPE_PAIRS = frozenset({
        frozenset({TYPE_UNUSED_CODE, TYPE_BLOCKING_RESOURCE}),
        frozenset({TYPE_FONT_FORMAT, TYPE_FONT_PRELOAD}),
        frozenset({TYPE_UNUSED_CODE, TYPE_FONT_FORMAT}),
        frozenset({TYPE_RESOURCE_PRELOAD, TYPE_BLOCKING_RESOURCE}),
    })
    # Upstream metric -> downstream metrics it feeds
    METRIC_CASCADE = {
        'TTFB': ('FCP', 'LCP'),
        'FCP': ('LCP',),
        'TBT': ('INP',),
    }
    # Description markers meaning "happens before this metric is reached"
    PRE_CRITICAL_MARKERS = {
        'LCP': ('pre-lcp', 'render-blocking'),
        'FCP': ('pre-fcp', 'render-blocking'),
    }
    RENDERING_TYPES = frozenset({
        TYPE_BLOCKING_RESOURCE, TYPE_FONT_PRELOAD, TYPE_RESOURCE_PRELOAD, TYPE_INLINE_CSS, TYPE_RESOURCE_HINTS,
    })

    def __init__(self, config: Optional[GraphConfig] = None, metric_thresholds: Optional[Dict[str, float]] = None):
        self.config = config or GraphConfig()
        self.metric_thresholds = metric_thresholds if metric_thresholds is not None else GRAPH_METRIC_THRESHOLDS

    def build(self, findings: List[Finding], metric_values: Optional[Dict[str, Optional[float]]] = None) -> CausalGraph:
        """Build and analyse the graph.

        Args:
            findings: Deduplicated findings for this run
            metric_values: Current metric values keyed by metric name; metrics
                without a known threshold are skipped

        Returns:
            CausalGraph with depths, root causes, symptoms and critical paths
        """
        graph = CausalGraph()
        metric_values = metric_values or {}

        for metric, value in metric_values.items():
            name = str(metric).upper()
            if name not in self.metric_thresholds:
                logger.debug("Skipping metric %s: no threshold defined", name)
                continue
            cg.add_node(graph, cg.node_from_metric(name, value, self.metric_thresholds[name]))

        for finding in findings:
            cg.add_node(graph, cg.node_from_finding(finding))

        for finding in findings:
            self._connect_to_metric(graph, finding)

        semantic_types = {f.id: classify(f) for f in findings}
        file_names = {f.id: extract_file_name(f.reference) for f in findings}
        pair_count = 0
        for a, b in self._candidate_pairs(findings, file_names):
            pair_count += 1
            for edge in self._detect_relationships(a, b, semantic_types, file_names):
                cg.add_edge(graph, edge)
        logger.debug("Examined %d finding pairs", pair_count)

        cg.calculate_depths(graph)
        cg.identify_root_causes(graph)
        cg.identify_symptoms(graph)
        graph.critical_paths = self._critical_paths(graph)

        logger.info(
            "Causal graph built",
            extra={
                "nodes": len(graph.nodes),
                "edges": len(graph.edges),
                "root_causes": len(graph.root_causes),
                "critical_paths": len(graph.critical_paths),
            },
        )
        return graph

    def _connect_to_metric(self, graph: CausalGraph, finding: Finding) -> None:
        metric_id = cg.metric_node_id(finding.metric)
        if metric_id not in graph.nodes:
            return
        confidence = finding.evidence_confidence
        strength = confidence if confidence is not None else self.DEFAULT_METRIC_EDGE_STRENGTH
        mechanism = finding.reasoning.mechanism if finding.reasoning and finding.reasoning.mechanism else finding.description
        cg.add_edge(graph, CausalEdge(
            source=finding.id,
            target=metric_id,
            relationship=KIND_TO_RELATIONSHIP.get(finding.kind, REL_CAUSES),
            strength=strength,
            mechanism=mechanism,
        ))

    # -- Pair selection
    def _candidate_pairs(self, findings: List[Finding], file_names: Dict[str, Optional[str]]) -> Iterable[Tuple[Finding, Finding]]:
        """Pairs (earlier, later) that at least one detector could link.

        Every detector needs a shared metric, a shared file or a cascade link
        between the two metrics, so indexing on those keys finds the same
        pairs as the full scan.
        """
        if not self.config.index_pairs:
            return combinations(findings, 2)

        by_metric: Dict[str, List[int]] = {}
        by_file: Dict[str, List[int]] = {}
        for index, finding in enumerate(findings):
            by_metric.setdefault(finding.metric, []).append(index)
            name = file_names.get(finding.id)
            if name:
                by_file.setdefault(name, []).append(index)

        pairs: Set[Tuple[int, int]] = set()
        for bucket in list(by_metric.values()) + list(by_file.values()):
            pairs.update(combinations(bucket, 2))
        for upstream, downstreams in self.METRIC_CASCADE.items():
            for downstream in downstreams:
                for i in by_metric.get(upstream, []):
                    for j in by_metric.get(downstream, []):
                        pairs.add((min(i, j), max(i, j)))
        return [(findings[i], findings[j]) for i, j in sorted(pairs)]

    # -- Relationship detectors
    def _detect_relationships(self, a: Finding, b: Finding, semantic_types: Dict[str, str],
                              file_names: Dict[str, Optional[str]]) -> List[CausalEdge]:
        edges = []
        for detector in (self._detect_duplicate, self._detect_file_relationship,
                         self._detect_metric_cascade, self._detect_timing):
            edge = detector(a, b, semantic_types, file_names)
            if edge is not None:
                edges.append(edge)
        return edges

    def _detect_duplicate(self, a, b, semantic_types, file_names) -> Optional[CausalEdge]:
        """Same metric, same type, same file and enough shared vocabulary."""
        if a.metric != b.metric or semantic_types[a.id] != semantic_types[b.id]:
            return None
        desc_a, desc_b = a.description.lower(), b.description.lower()
        shared = [kw for kw in self.DUPLICATE_KEYWORDS if kw in desc_a and kw in desc_b]
        if len(shared) < self.DUPLICATE_MIN_SHARED_KEYWORDS:
            return None
        file_a, file_b = file_names.get(a.id), file_names.get(b.id)
        if not file_a or file_a != file_b:
            return None
        return CausalEdge(a.id, b.id, REL_DUPLICATES, self.DUPLICATE_STRENGTH,
                          'Same issue detected by multiple tasks')

    def _detect_file_relationship(self, a, b, semantic_types, file_names) -> Optional[CausalEdge]:
        file_a, file_b = file_names.get(a.id), file_names.get(b.id)
        if not file_a or file_a != file_b:
            return None
        type_a, type_b = semantic_types[a.id], semantic_types[b.id]
        if frozenset({type_a, type_b}) not in self.COMPATIBLE_TYPE_PAIRS:
            return None

        if a.kind == KIND_WASTE and b.kind == KIND_BOTTLENECK:
            return CausalEdge(a.id, b.id, REL_CONTRIBUTES, self.WASTE_TO_BOTTLENECK_STRENGTH,
                              f"{type_a} in {file_a} contributes to {type_b}")
        if b.kind == KIND_WASTE and a.kind == KIND_BOTTLENECK:
            return CausalEdge(b.id, a.id, REL_CONTRIBUTES, self.WASTE_TO_BOTTLENECK_STRENGTH,
                              f"{type_b} in {file_a} contributes to {type_a}")
        return CausalEdge(a.id, b.id, REL_CONTRIBUTES, self.CO_LOCATED_STRENGTH,
                          f"Both {type_a} and {type_b} relate to {file_a}")

    def _detect_metric_cascade(self, a, b, semantic_types, file_names) -> Optional[CausalEdge]:
        if b.metric in self.METRIC_CASCADE.get(a.metric, ()):
            upstream, downstream = a, b
        elif a.metric in self.METRIC_CASCADE.get(b.metric, ()):
            upstream, downstream = b, a
        else:
            return None
        return CausalEdge(
            upstream.id, downstream.id, REL_DEPENDS, self.CASCADE_STRENGTH,
            f"{downstream.metric} depends on {upstream.metric}: improving {upstream.metric} cascades to {downstream.metric}",
        )

    def _detect_timing(self, a, b, semantic_types, file_names) -> Optional[CausalEdge]:
        if a.metric != b.metric:
            return None
        markers = self.PRE_CRITICAL_MARKERS.get(a.metric)
        if not markers:
            return None
        desc_a, desc_b = a.description.lower(), b.description.lower()
        if not (any(m in desc_a for m in markers) and any(m in desc_b for m in markers)):
            return None
        type_a, type_b = semantic_types[a.id], semantic_types[b.id]
        if type_a not in self.RENDERING_TYPES or type_b not in self.RENDERING_TYPES:
            return None
        return CausalEdge(
            a.id, b.id, REL_COMPOUNDS, self.TIMING_STRENGTH,
            f"Multiple pre-{a.metric} rendering issues ({type_a} + {type_b}) compound to delay {a.metric}",
        )

    # -- Critical paths
    def _critical_paths(self, graph: CausalGraph) -> List[List[str]]:
        limit = self.config.max_critical_paths
        paths: List[List[str]] = []
        for node in graph.nodes.values():
            if not node.is_metric:
                continue
            remaining = limit - len(paths)
            if remaining <= 0:
                logger.warning("Critical path limit reached", extra={"max_critical_paths": limit})
                break
            found = cg.find_critical_paths(graph, node.id, max_paths=remaining)
            paths.extend(found)
            if len(found) == remaining:
                logger.warning("Critical path limit reached", extra={"max_critical_paths": limit})
                break
        return paths
