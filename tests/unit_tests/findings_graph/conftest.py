import random

import pytest

from cwv_findings.core.types import FINDING_KINDS, Evidence, EstimatedImpact, Finding

METRICS = ['LCP', 'FCP', 'TTFB', 'TBT', 'INP', 'CLS']
FILES = ['app.js', 'vendor.js', 'main.css', 'inter.woff2', 'hero.webp']
DESCRIPTIONS = [
    'Render-blocking script {file} delays hero image',
    'Hero image waits on render-blocking script {file}',
    'Render-blocking stylesheet {file} pre-lcp',
    'Unused JavaScript in {file} parsed before render',
    'Unused CSS rules shipped in {file}',
    'Preload the hero image {file}',
    'Font served as TTF instead of woff2: {file}',
    'Preload the primary font {file}',
    'Images missing width attributes in {file}',
    'Inline critical CSS from {file}',
    'Slow server response',
]
SOURCES = ['psi', 'har', 'coverage', 'code', 'crux', 'html', 'lighthouse-ci']


def make_finding(finding_id, kind='bottleneck', metric='LCP', description='Render-blocking script app.js',
                 source='psi', reference='/static/app.js 640 ms', confidence=0.8, reduction=600.0,
                 impact_confidence=0.7, hint=False, produced_by='psi'):
    return Finding(
        id=finding_id,
        kind=kind,
        metric=metric,
        description=description,
        evidence=Evidence(source=source, reference=reference, confidence=confidence),
        estimated_impact=EstimatedImpact(reduction=reduction, confidence=impact_confidence),
        is_root_cause_hint=hint,
        produced_by=produced_by,
    )


def generate_findings(seed, count):
    """Random but reproducible findings drawn from a small vocabulary so pairs interact."""
    rng = random.Random(seed)
    findings = []
    for i in range(count):
        file_name = rng.choice(FILES)
        description = rng.choice(DESCRIPTIONS).format(file=file_name)
        reference = f"/static/{file_name} {rng.randint(10, 900)} ms" if rng.random() < 0.8 else 'p75 over budget'
        findings.append(make_finding(
            f"f-{i}",
            kind=rng.choice(sorted(FINDING_KINDS)),
            metric=rng.choice(METRICS),
            description=description,
            source=rng.choice(SOURCES),
            reference=reference,
            confidence=rng.choice([None, round(rng.uniform(0, 1), 2)]),
            reduction=round(rng.uniform(0, 6000), 1),
            impact_confidence=rng.choice([None, round(rng.uniform(0, 1), 2)]),
            hint=rng.random() < 0.1,
            produced_by=rng.choice(['psi', 'har', 'coverage', 'code']),
        ))
    return findings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ('AGENT_MAX_RETRIES', 'GRAPH_INDEX_PAIRS', 'GRAPH_MAX_CRITICAL_PATHS'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def random_findings():
    return generate_findings


@pytest.fixture
def finding_factory():
    return make_finding
