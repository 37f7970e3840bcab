import logging
from typing import Dict, List, Tuple

from cwv_findings.core.types import DeduplicationResult, Finding, MergeGroup
from cwv_findings.analysis.finding_classifier import classify, extract_file_reference

logger = logging.getLogger(__name__)

GENERAL_REFERENCE = "general"


def merge_key(finding: Finding) -> Tuple[str, str, str]:
    """(semantic type, metric, referenced file or 'general')."""
    reference = extract_file_reference(finding.reference) or GENERAL_REFERENCE
    return classify(finding), finding.metric, reference


def _confidence(finding: Finding) -> float:
    value = finding.evidence_confidence
    return value if value is not None else -1.0


def deduplicate(findings: List[Finding]) -> DeduplicationResult:
    """
    Collapse findings describing the same issue into one representative each.

    The representative is the member with the highest evidence confidence;
    on ties the member that came first in the input wins. Groups and output
    findings are ordered by merge key, so the result does not depend on
    input order beyond that tie-break.
    """
    groups: Dict[Tuple[str, str, str], List[Finding]] = {}
    for finding in findings:
        groups.setdefault(merge_key(finding), []).append(finding)

    deduplicated: List[Finding] = []
    merge_groups: List[MergeGroup] = []
    for key in sorted(groups):
        members = groups[key]
        representative = members[0]
        for member in members[1:]:
            # Strictly greater keeps the first-seen member on ties
            if _confidence(member) > _confidence(representative):
                representative = member
        deduplicated.append(representative)
        merge_groups.append(MergeGroup(
            merge_key=key,
            representative_id=representative.id,
            original_count=len(members),
            member_ids=sorted(m.id for m in members),
            task_ids=sorted({m.produced_by for m in members if m.produced_by}),
        ))
        if len(members) > 1:
            logger.debug("Merged %d findings under %s into %s", len(members), key, representative.id)

    logger.info("Deduplicated findings", extra={"before": len(findings), "after": len(deduplicated)})
    return DeduplicationResult(findings=deduplicated, merge_groups=merge_groups)
