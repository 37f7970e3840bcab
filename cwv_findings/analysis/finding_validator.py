import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from cwv_findings.core.types import (
    CausalGraph,
    EstimatedImpact,
    Evidence,
    Finding,
    Reasoning,
    ValidationResult,
)
from cwv_findings.analysis import validation_rules as rules

logger = logging.getLogger(__name__)

Issues = Tuple[List[str], List[str]]


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class FindingValidator:
    """
    Checks evidence, impact, reasoning and root-cause placement of each
    finding and calibrates its confidence by evidence-source reliability.

    Only classifies: approve/adjust/block is decided by ValidationPolicy.
    """

    def validate(self, finding: Finding, graph: Optional[CausalGraph] = None) -> ValidationResult:
        warnings: List[str] = []
        errors: List[str] = []
        adjustments: Dict[str, Any] = {}

        self._extend((warnings, errors), self._check_evidence(finding.evidence))

        impact_issues, adjusted_impact = self._check_impact(finding.estimated_impact, finding.metric)
        self._extend((warnings, errors), impact_issues)
        if adjusted_impact is not None:
            adjustments['impact'] = adjusted_impact

        if finding.reasoning is not None:
            self._extend((warnings, errors), self._check_reasoning(finding.reasoning))

        if graph is not None:
            node = graph.nodes.get(finding.id)
            if node is not None and node.is_root_cause:
                self._extend((warnings, errors), self._check_root_cause(finding, node.depth))

        confidence = self.calibrate_confidence(finding, len(warnings), len(errors))
        is_valid = not errors and confidence >= rules.MIN_OVERALL_CONFIDENCE
        return ValidationResult(
            finding_id=finding.id,
            is_valid=is_valid,
            confidence=confidence,
            warnings=warnings,
            errors=errors,
            adjustments=adjustments,
        )

    def validate_all(self, findings: List[Finding], graph: Optional[CausalGraph] = None) -> Dict[str, Any]:
        """Per-finding results plus counts and mean confidence."""
        results = [self.validate(finding, graph) for finding in findings]
        summary = {
            'total': len(results),
            'valid': sum(1 for r in results if r.is_valid),
            'invalid': sum(1 for r in results if not r.is_valid),
            'adjusted': sum(1 for r in results if r.adjustments),
            'average_confidence': (sum(r.confidence for r in results) / len(results)) if results else 0.0,
        }
        logger.info("Validated findings", extra=summary)
        return {'results': results, 'summary': summary}

    # -- Confidence
    def calibrate_confidence(self, finding: Finding, warning_count: int = 0, error_count: int = 0) -> float:
        """Raw average, capped by the source's reliability tier, then penalised per issue."""
        evidence_conf = finding.evidence.confidence if finding.evidence is not None else None
        impact_conf = finding.estimated_impact.confidence if finding.estimated_impact is not None else None
        evidence_conf = rules.DEFAULT_CONFIDENCE if evidence_conf is None else _clamp(evidence_conf)
        impact_conf = rules.DEFAULT_CONFIDENCE if impact_conf is None else _clamp(impact_conf)
        raw = (evidence_conf + impact_conf) / 2

        source = finding.evidence.source if finding.evidence is not None else ''
        tier = rules.source_tier(source)
        confidence = min(raw, rules.TIER_MAX_CONFIDENCE[tier])
        if tier == rules.TIER_SPECULATIVE and raw > rules.SPECULATIVE_HIGH_RAW_CONFIDENCE:
            confidence *= rules.SPECULATIVE_OVERCLAIM_FACTOR

        confidence *= rules.WARNING_PENALTY ** warning_count
        confidence *= rules.ERROR_PENALTY ** error_count
        return confidence

    # -- Checks
    @staticmethod
    def _extend(target: Issues, issues: Issues) -> None:
        target[0].extend(issues[0])
        target[1].extend(issues[1])

    def _check_evidence(self, evidence: Optional[Evidence]) -> Issues:
        warnings: List[str] = []
        errors: List[str] = []
        if evidence is None:
            errors.append('Missing evidence')
            return warnings, errors

        source = rules.base_source(evidence.source or '')
        if not rules.is_known_source(evidence.source or ''):
            warnings.append(f"Unusual evidence source: {evidence.source}")

        reference = evidence.reference or ''
        if source not in rules.FILE_REFERENCE_EXEMPT_SOURCES and len(reference) <= rules.MIN_REFERENCE_LENGTH:
            errors.append(f"Evidence reference too vague (needs more than {rules.MIN_REFERENCE_LENGTH} chars with specifics)")
        if source not in rules.FILE_REFERENCE_EXEMPT_SOURCES and not rules.FILE_REFERENCE_PATTERN.search(reference):
            warnings.append('Evidence lacks specific file reference')
        if source not in rules.METRIC_VALUE_EXEMPT_SOURCES and not rules.METRIC_VALUE_PATTERN.search(reference):
            warnings.append('Evidence lacks concrete metric values')

        if evidence.confidence is not None and evidence.confidence < rules.MIN_EVIDENCE_CONFIDENCE:
            warnings.append(f"Low evidence confidence: {evidence.confidence * 100:.0f}%")
        return warnings, errors

    def _check_impact(self, impact: Optional[EstimatedImpact], metric: str) -> Tuple[Issues, Optional[EstimatedImpact]]:
        warnings: List[str] = []
        errors: List[str] = []
        if impact is None:
            errors.append('Missing impact estimate')
            return (warnings, errors), None

        reduction = impact.reduction or 0.0
        adjusted = None
        ceiling = rules.MAX_REALISTIC_IMPACT.get(metric)
        if ceiling is not None and reduction > ceiling:
            warnings.append(
                f"Impact may be overestimated: {_format_number(reduction)} > {_format_number(ceiling)} (max realistic)"
            )
            original_conf = impact.confidence if impact.confidence is not None else rules.DEFAULT_CONFIDENCE
            adjusted = replace(
                impact,
                reduction=ceiling,
                confidence=original_conf * rules.CAPPED_IMPACT_CONFIDENCE_FACTOR,
                calculation=f"{impact.calculation or ''} [Capped at {_format_number(ceiling)} for realism]".strip(),
            )

        floor = rules.MIN_ACTIONABLE_IMPACT.get(metric)
        if floor is not None and reduction < floor:
            warnings.append(
                f"Impact too small to be actionable: {_format_number(reduction)} < {_format_number(floor)}"
            )

        if impact.confidence is not None and impact.confidence < rules.MIN_IMPACT_CONFIDENCE:
            warnings.append(f"Low impact confidence: {impact.confidence * 100:.0f}%")

        if impact.calculation:
            warnings.extend(self._check_calculation(impact.calculation, reduction))
        return (warnings, errors), adjusted

    @staticmethod
    def _check_calculation(calculation: str, reduction: float) -> List[str]:
        warnings = []
        if _format_number(reduction) not in calculation:
            warnings.append('Calculation does not show how reduction value was derived')
        lowered = calculation.lower()
        if any(marker in lowered for marker in rules.CASCADE_MARKERS):
            if not rules.CASCADE_NOTE_PATTERN.search(calculation):
                warnings.append('Cascade impact claims 1:1 improvement (unrealistic)')
        return warnings

    @staticmethod
    def _check_reasoning(reasoning: Reasoning) -> Issues:
        warnings: List[str] = []
        errors: List[str] = []
        for name in rules.REASONING_FIELDS:
            text = getattr(reasoning, name) or ''
            if len(text) <= rules.MIN_REASONING_LENGTH:
                errors.append(f"Reasoning {name} too vague (must be >{rules.MIN_REASONING_LENGTH} chars)")
        observation = reasoning.observation or ''
        if not rules.METRIC_VALUE_PATTERN.search(observation):
            warnings.append('Observation lacks concrete metric values')
        if not rules.FILE_REFERENCE_PATTERN.search(observation):
            warnings.append('Observation lacks specific file reference')
        return warnings, errors

    @staticmethod
    def _check_root_cause(finding: Finding, depth: Optional[int]) -> Issues:
        warnings: List[str] = []
        errors: List[str] = []
        if depth is None:
            warnings.append('Root cause is not connected to any metric')
        elif depth < rules.ROOT_CAUSE_MIN_DEPTH:
            errors.append(f"Root cause depth too shallow: {depth} (should be >= {rules.ROOT_CAUSE_MIN_DEPTH})")
        elif depth > rules.ROOT_CAUSE_MAX_DEPTH:
            warnings.append(f"Root cause depth very deep: {depth} (may be too abstract)")
        if len(finding.description or '') <= rules.MIN_FIX_DESCRIPTION_LENGTH:
            warnings.append('Root cause lacks concrete fix description')
        return warnings, errors
