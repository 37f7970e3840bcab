import logging
from dataclasses import replace
from typing import List, Optional

from cwv_findings.core.config import ValidationConfig
from cwv_findings.core.types import BlockedFinding, CausalGraph, Finding, ValidationReport, ValidationResult
from cwv_findings.analysis import validation_rules as rules
from cwv_findings.analysis.finding_validator import FindingValidator

logger = logging.getLogger(__name__)


class ValidationPolicy:
    """
    Turns validation results into a disposition per finding.

    - errors block when blocking_mode is on
    - warnings (and sub-minimum confidence) block only in strict_mode
    - findings with adjustments are rewritten when adjust_mode is on
    - everything else is approved unchanged
    """

    def __init__(self, config: Optional[ValidationConfig] = None, validator: Optional[FindingValidator] = None):
        self.config = config or ValidationConfig()
        self.validator = validator or FindingValidator()

    def apply(self, findings: List[Finding], graph: Optional[CausalGraph] = None) -> ValidationReport:
        validation = self.validator.validate_all(findings, graph)
        report = ValidationReport()

        for finding, result in zip(findings, validation['results']):
            report.results[finding.id] = result
            if result.errors and self.config.blocking_mode:
                report.blocked.append(BlockedFinding(finding=finding, reasons=list(result.errors),
                                                     confidence=result.confidence))
            elif self.config.strict_mode and (result.warnings or result.confidence < rules.MIN_OVERALL_CONFIDENCE):
                reasons = list(result.warnings) or [f"Confidence {result.confidence:.2f} below minimum"]
                report.blocked.append(BlockedFinding(finding=finding, reasons=reasons, confidence=result.confidence))
            elif result.adjustments and self.config.adjust_mode:
                report.adjusted.append(self._adjust(finding, result))
            else:
                report.approved.append(finding)

        report.summary = {
            'total': len(findings),
            'approved': len(report.approved),
            'adjusted': len(report.adjusted),
            'blocked': len(report.blocked),
            'final_count': len(report.approved) + len(report.adjusted),
            'average_confidence': validation['summary']['average_confidence'],
        }
        logger.info(
            "Validation: %d approved, %d adjusted, %d blocked",
            len(report.approved), len(report.adjusted), len(report.blocked),
        )
        for blocked in report.blocked:
            logger.debug("Blocked %s: %s", blocked.finding.id, blocked.reasons[0] if blocked.reasons else "")
        return report

    @staticmethod
    def _adjust(finding: Finding, result: ValidationResult) -> Finding:
        """Copy of the finding with the adjusted impact and calibrated confidence."""
        changes = {}
        if 'impact' in result.adjustments:
            changes['estimated_impact'] = result.adjustments['impact']
        if finding.evidence is not None:
            changes['evidence'] = replace(finding.evidence, confidence=result.confidence)
        return replace(finding, **changes)
