"""Causal graph operations: construction primitives, analysis passes and export."""
import logging
from collections import deque
from typing import Any, Dict, List, Optional

from cwv_findings.core.types import (
    NODE_TYPE_FINDING,
    NODE_TYPE_METRIC,
    REL_DUPLICATES,
    CausalEdge,
    CausalGraph,
    CausalNode,
    Finding,
    MetricNode,
    RootCausePriority,
)

logger = logging.getLogger(__name__)


def metric_node_id(metric: str) -> str:
    return f"metric-{metric.lower()}"


def node_from_finding(finding: Finding) -> CausalNode:
    return CausalNode(id=finding.id, node_type=NODE_TYPE_FINDING, finding=finding)


def node_from_metric(metric: str, current_value: Optional[float], target_threshold: Optional[float]) -> CausalNode:
    node_id = metric_node_id(metric)
    return CausalNode(
        id=node_id,
        node_type=NODE_TYPE_METRIC,
        metric_node=MetricNode(id=node_id, metric=metric, current_value=current_value,
                               target_threshold=target_threshold),
        depth=0,
    )


def add_node(graph: CausalGraph, node: CausalNode) -> None:
    if node.id in graph.nodes:
        logger.warning("Node %s already present; keeping the first one", node.id)
        return
    graph.nodes[node.id] = node


def add_edge(graph: CausalGraph, edge: CausalEdge) -> bool:
    """Add a cause -> effect edge. Returns False for unknown endpoints or a repeated triple."""
    if edge.source not in graph.nodes or edge.target not in graph.nodes:
        logger.warning("Edge %s -> %s references a missing node; skipped", edge.source, edge.target)
        return False
    if edge.source == edge.target:
        return False
    if any(existing.key == edge.key for existing in graph.edges):
        return False

    graph.edges.append(edge)
    source, target = graph.nodes[edge.source], graph.nodes[edge.target]
    if edge.target not in source.causes:
        source.causes.append(edge.target)
    if edge.source not in target.caused_by:
        target.caused_by.append(edge.source)
    return True


def incoming_edges(graph: CausalGraph, node_id: str, include_duplicates: bool = True) -> List[CausalEdge]:
    return [
        e for e in graph.edges
        if e.target == node_id and (include_duplicates or e.relationship != REL_DUPLICATES)
    ]


def outgoing_edges(graph: CausalGraph, node_id: str) -> List[CausalEdge]:
    return [e for e in graph.edges if e.source == node_id]


# --- Analysis passes
def calculate_depths(graph: CausalGraph) -> None:
    """
    Breadth-first relaxation from the metric nodes (depth 0).

    A node's depth is 1 + the largest depth among the nodes it causes.
    Each node can be raised at most len(nodes) times, which bounds the work
    when the edges form a cycle. Nodes that reach no metric keep None.
    """
    for node in graph.nodes.values():
        node.depth = 0 if node.is_metric else None

    limit = len(graph.nodes)
    updates: Dict[str, int] = {}
    queue = deque(node.id for node in graph.nodes.values() if node.is_metric)
    while queue:
        current = graph.nodes[queue.popleft()]
        candidate = current.depth + 1
        for cause_id in current.caused_by:
            cause = graph.nodes[cause_id]
            if cause.is_metric:
                continue
            if cause.depth is not None and cause.depth >= candidate:
                continue
            if updates.get(cause_id, 0) >= limit:
                continue
            cause.depth = candidate
            updates[cause_id] = updates.get(cause_id, 0) + 1
            queue.append(cause_id)


def identify_root_causes(graph: CausalGraph) -> List[str]:
    """Hinted findings plus findings with no incoming edges other than duplicates."""
    blocked = {e.target for e in graph.edges if e.relationship != REL_DUPLICATES}
    roots = []
    for node in graph.nodes.values():
        if node.is_metric:
            node.is_root_cause = False
            continue
        hinted = node.finding is not None and node.finding.is_root_cause_hint
        node.is_root_cause = hinted or node.id not in blocked
        if node.is_root_cause:
            roots.append(node.id)
    graph.root_causes = roots
    return roots


def identify_symptoms(graph: CausalGraph) -> List[str]:
    """Non-root, non-metric nodes that cause nothing."""
    sources = {e.source for e in graph.edges}
    symptoms = [
        node.id for node in graph.nodes.values()
        if not node.is_metric and not node.is_root_cause and node.id not in sources
    ]
    graph.symptoms = symptoms
    return symptoms


def find_critical_paths(graph: CausalGraph, metric_id: str, max_paths: Optional[int] = None) -> List[List[str]]:
    """
    Every path from a root cause up to metric_id, ordered root -> ... -> metric.

    Walks caused_by links depth-first; a node may not repeat within one path
    but may appear in several paths.
    """
    paths: List[List[str]] = []
    if metric_id not in graph.nodes:
        return paths

    stack = [(metric_id, [metric_id])]
    while stack:
        node_id, path = stack.pop()
        node = graph.nodes[node_id]
        if node.is_root_cause and len(path) > 1:
            paths.append(list(reversed(path)))
            if max_paths is not None and len(paths) >= max_paths:
                break
            continue
        for cause_id in reversed(node.caused_by):
            if cause_id not in path:
                stack.append((cause_id, path + [cause_id]))
    return paths


# --- Reporting
def prioritize_root_causes(graph: CausalGraph) -> List[RootCausePriority]:
    """Root causes ordered by the summed estimated reduction of the findings they point at."""
    priorities = []
    for root_id in graph.root_causes:
        node = graph.nodes.get(root_id)
        if node is None:
            continue
        total = 0.0
        affected = []
        for edge in outgoing_edges(graph, root_id):
            affected.append(edge.target)
            target = graph.nodes[edge.target].finding
            if target is not None and target.estimated_impact is not None:
                total += target.estimated_impact.reduction or 0.0
        priorities.append(RootCausePriority(
            finding_id=root_id,
            description=node.description,
            total_impact=total,
            affected_findings=affected,
            depth=node.depth,
        ))
    # Equal impacts fall back to id order
    return sorted(priorities, key=lambda p: (-p.total_impact, p.finding_id))


def summarize_graph(graph: CausalGraph) -> Dict[str, Any]:
    depths = [n.depth for n in graph.nodes.values() if n.depth is not None]
    return {
        'total_nodes': len(graph.nodes),
        'total_edges': len(graph.edges),
        'root_causes': len(graph.root_causes),
        'symptoms': len(graph.symptoms),
        'critical_paths': len(graph.critical_paths),
        'avg_depth': (sum(depths) / len(depths)) if depths else 0.0,
    }


def graph_to_dict(graph: CausalGraph) -> Dict[str, Any]:
    """JSON-serializable form of the whole graph."""
    return {
        'nodes': {node_id: node.to_dict() for node_id, node in graph.nodes.items()},
        'edges': [edge.to_dict() for edge in graph.edges],
        'root_causes': list(graph.root_causes),
        'symptoms': list(graph.symptoms),
        'critical_paths': [list(path) for path in graph.critical_paths],
        'summary': summarize_graph(graph),
    }


def _dot_escape(text: str) -> str:
    return text.replace('\\', '\\\\').replace('"', '\\"').replace('\n', ' ')


def export_to_dot(graph: CausalGraph) -> str:
    """Graphviz DOT with root causes at the bottom and metrics at the top."""
    lines = ['digraph CausalGraph {', '  rankdir=BT;', '  node [shape=box];', '']
    for node in graph.nodes.values():
        shape = 'ellipse' if node.is_metric else 'box'
        if node.is_root_cause:
            color = 'red'
        elif node.is_metric:
            color = 'green'
        else:
            color = 'lightblue'
        label = f"{_dot_escape(node.description)}\\n(depth: {node.depth})"
        lines.append(f'  "{node.id}" [label="{label}", shape={shape}, style=filled, fillcolor={color}];')
    lines.append('')
    for edge in graph.edges:
        style = 'dashed' if edge.relationship == REL_DUPLICATES else 'solid'
        label = f"{edge.relationship}\\n({edge.strength * 100:.0f}%)"
        lines.append(f'  "{edge.source}" -> "{edge.target}" [label="{label}", style={style}];')
    lines.append('}')
    return '\n'.join(lines) + '\n'
