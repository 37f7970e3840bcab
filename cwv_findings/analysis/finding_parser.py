import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from cwv_findings.core.types import (
    FINDING_KINDS,
    Evidence,
    EstimatedImpact,
    Finding,
    Reasoning,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('id', 'kind', 'metric', 'description')


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_evidence(raw: Any) -> Optional[Evidence]:
    # Some producers emit a list of evidence items; the first one is authoritative
    if isinstance(raw, list):
        raw = raw[0] if raw else None
    if not isinstance(raw, dict) or not raw.get('source'):
        return None
    return Evidence(
        source=str(raw['source']),
        reference=str(raw.get('reference') or ''),
        confidence=_as_float(raw.get('confidence')),
    )


def _parse_impact(raw: Any) -> Optional[EstimatedImpact]:
    if not isinstance(raw, dict):
        return None
    reduction = _as_float(raw.get('reduction'))
    return EstimatedImpact(
        reduction=reduction if reduction is not None else 0.0,
        confidence=_as_float(raw.get('confidence')),
        calculation=raw.get('calculation'),
    )


def _parse_reasoning(raw: Any) -> Optional[Reasoning]:
    if not isinstance(raw, dict):
        return None
    return Reasoning(
        observation=str(raw.get('observation') or ''),
        diagnosis=str(raw.get('diagnosis') or ''),
        mechanism=str(raw.get('mechanism') or ''),
        solution=str(raw.get('solution') or ''),
    )


def parse_finding(raw: Any, produced_by: str = '') -> Tuple[Optional[Finding], Optional[str]]:
    """Build a Finding from a raw mapping.

    Returns (finding, None) on success or (None, warning) when the item is
    malformed. Missing evidence or impact is not malformed.
    """
    if isinstance(raw, Finding):
        return raw, None
    if not isinstance(raw, dict):
        return None, f"Dropped finding from {produced_by or 'unknown task'}: not an object"

    values = {
        'id': _first(raw, 'id'),
        'kind': _first(raw, 'kind', 'type'),
        'metric': _first(raw, 'metric'),
        'description': _first(raw, 'description', 'finding'),
    }
    missing = [name for name in REQUIRED_FIELDS if not values[name]]
    if missing:
        label = values['id'] or '<no id>'
        return None, f"Dropped finding {label} from {produced_by or 'unknown task'}: missing {', '.join(missing)}"

    kind = str(values['kind']).lower()
    if kind not in FINDING_KINDS:
        return None, f"Dropped finding {values['id']}: unknown kind '{values['kind']}'"

    finding = Finding(
        id=str(values['id']),
        kind=kind,
        metric=str(values['metric']).upper(),
        description=str(values['description']),
        evidence=_parse_evidence(_first(raw, 'evidence')),
        estimated_impact=_parse_impact(_first(raw, 'estimated_impact', 'estimatedImpact')),
        reasoning=_parse_reasoning(_first(raw, 'reasoning')),
        is_root_cause_hint=bool(_first(raw, 'is_root_cause_hint', 'isRootCauseHint', 'rootCause')),
        produced_by=str(_first(raw, 'produced_by', 'producedBy') or produced_by),
    )
    return finding, None


def parse_findings(items: Optional[Iterable[Any]], produced_by: str = '') -> Tuple[List[Finding], List[str]]:
    """Parse every item, dropping malformed ones with a recorded warning."""
    findings: List[Finding] = []
    warnings: List[str] = []
    for raw in items or []:
        finding, warning = parse_finding(raw, produced_by=produced_by)
        if finding is None:
            logger.warning(warning)
            warnings.append(warning)
            continue
        findings.append(finding)
    return findings, warnings


def unique_ids(findings: List[Finding]) -> Tuple[List[Finding], Dict[str, str]]:
    """
    Give every finding a distinct id so graph nodes and validation results
    stay one per finding.

    The first finding keeps its id. Later findings with an id already in use
    are renamed to `<producedBy>:<id>` (plus a counter if that is taken too).

    Returns:
        The findings in input order, and a map of new id -> original id
    """
    seen = {f.id for f in findings}
    used: set = set()
    renamed: Dict[str, str] = {}
    result: List[Finding] = []
    for finding in findings:
        if finding.id not in used:
            used.add(finding.id)
            result.append(finding)
            continue
        base = f"{finding.produced_by or 'task'}:{finding.id}"
        new_id, n = base, 2
        while new_id in used or new_id in seen:
            new_id, n = f"{base}-{n}", n + 1
        logger.warning("Finding id %s from %s already in use; renamed to %s",
                       finding.id, finding.produced_by, new_id)
        used.add(new_id)
        renamed[new_id] = finding.id
        result.append(replace(finding, id=new_id))
    return result, renamed
