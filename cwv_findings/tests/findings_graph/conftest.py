"""Shared test fixtures for findings graph tests."""
import pytest

from cwv_findings.core.types import (
    KIND_BOTTLENECK, KIND_OPPORTUNITY, KIND_WASTE,
    Evidence, EstimatedImpact, Finding, Reasoning, SignalSnapshot,
)


def build_finding(
    finding_id='f-1',
    kind=KIND_BOTTLENECK,
    metric='LCP',
    description='Render-blocking script app.js delays first render',
    source='psi',
    reference='render-blocking-resources: /static/app.js 640 ms',
    confidence=0.8,
    reduction=600,
    impact_confidence=0.7,
    calculation=None,
    reasoning=None,
    hint=False,
    produced_by='psi',
):
    evidence = Evidence(source=source, reference=reference, confidence=confidence) if source is not None else None
    impact = (
        EstimatedImpact(reduction=reduction, confidence=impact_confidence, calculation=calculation)
        if reduction is not None else None
    )
    return Finding(
        id=finding_id,
        kind=kind,
        metric=metric,
        description=description,
        evidence=evidence,
        estimated_impact=impact,
        reasoning=reasoning,
        is_root_cause_hint=hint,
        produced_by=produced_by,
    )


@pytest.fixture
def make_finding():
    """Factory for findings with sensible, valid defaults."""
    return build_finding


@pytest.fixture
def unused_code_finding():
    return build_finding(
        finding_id='coverage-1',
        kind=KIND_WASTE,
        description='Unused JavaScript in app.js is parsed before render',
        source='coverage',
        reference='/static/app.js 310 KB unused (58%)',
        confidence=0.8,
        reduction=400,
        produced_by='coverage',
    )


@pytest.fixture
def blocking_finding():
    return build_finding(
        finding_id='psi-1',
        kind=KIND_BOTTLENECK,
        description='Render-blocking script app.js delays first render',
        source='psi.audits',
        reference='render-blocking-resources: /static/app.js 640 ms',
        confidence=0.85,
        reduction=600,
    )


@pytest.fixture
def image_sizing_finding():
    return build_finding(
        finding_id='html-1',
        kind=KIND_OPPORTUNITY,
        description='Images missing width and height attributes injected by app.js',
        source='html',
        reference='<img> tags created in /static/app.js shift 120 ms',
        confidence=0.7,
        reduction=300,
        produced_by='html',
    )


@pytest.fixture
def good_reasoning():
    return Reasoning(
        observation='app.js blocks rendering for 640 ms before first paint',
        diagnosis='The script is loaded synchronously in the document head',
        mechanism='Parser waits for the script, which pushes back the LCP image fetch',
        solution='Load app.js with defer so parsing continues while it downloads',
    )


@pytest.fixture
def sample_snapshot():
    return SignalSnapshot(
        data={'entriesCount': 212, 'transferBytes': 2_400_000, 'unusedBytes': 410_000, 'unusedRatio': 0.42,
              'lcp': 4100.0, 'tbt': 480.0, 'cls': 0.18},
        psi={'renderBlocking': True, 'reduceUnusedJS': True, 'redirects': False},
    )
