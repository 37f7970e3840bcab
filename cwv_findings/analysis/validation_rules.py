"""Validation criteria for findings: evidence quality, impact realism,
reasoning depth, root-cause placement and source reliability."""
import re

# Minimum confidences
MIN_EVIDENCE_CONFIDENCE = 0.5
MIN_IMPACT_CONFIDENCE = 0.5
MIN_OVERALL_CONFIDENCE = 0.6
DEFAULT_CONFIDENCE = 0.5

# --- Evidence
ALLOWED_SOURCES = ('psi', 'crux', 'rum', 'har', 'coverage', 'perfEntries', 'html', 'rules', 'code')
MIN_REFERENCE_LENGTH = 10
# Field data describes the whole page, so no file name is expected
FILE_REFERENCE_EXEMPT_SOURCES = frozenset({'crux', 'rum'})
# These sources are themselves metric values
METRIC_VALUE_EXEMPT_SOURCES = frozenset({'crux', 'rum', 'perfEntries'})

FILE_REFERENCE_PATTERN = re.compile(r"\.(js|css|html|woff2?|jpg|png|webp|svg)", re.IGNORECASE)
METRIC_VALUE_PATTERN = re.compile(r"\d+\s*(ms|KB|MB|s|%)", re.IGNORECASE)
NUMBER_PATTERN = re.compile(r"\d+(\.\d+)?")

# --- Impact (milliseconds, CLS in score units)
MAX_REALISTIC_IMPACT = {
    'LCP': 2000,
    'CLS': 0.3,
    'INP': 500,
    'TBT': 1000,
    'TTFB': 1500,
    'FCP': 1500,
}
MIN_ACTIONABLE_IMPACT = {
    'LCP': 200,
    'CLS': 0.03,
    'INP': 50,
    'TBT': 100,
}
CAPPED_IMPACT_CONFIDENCE_FACTOR = 0.7
CASCADE_MARKERS = ('cascade', '→', '->')
CASCADE_NOTE_PATTERN = re.compile(r"not 1:1|cascading|indirect|partial", re.IGNORECASE)

# --- Reasoning
MIN_REASONING_LENGTH = 20
REASONING_FIELDS = ('observation', 'diagnosis', 'mechanism', 'solution')

# --- Root causes
ROOT_CAUSE_MIN_DEPTH = 1
ROOT_CAUSE_MAX_DEPTH = 4
MIN_FIX_DESCRIPTION_LENGTH = 20

# --- Source reliability tiers (maximum calibrated confidence)
TIER_FIELD = 'field'
TIER_LAB = 'lab'
TIER_STATIC = 'static'
TIER_SPECULATIVE = 'speculative'

SOURCE_TIERS = {
    'crux': TIER_FIELD,
    'rum': TIER_FIELD,
    'psi': TIER_LAB,
    'perfEntries': TIER_LAB,
    'har': TIER_LAB,
    'coverage': TIER_STATIC,
    'html': TIER_STATIC,
    'rules': TIER_STATIC,
    'code': TIER_SPECULATIVE,
}
TIER_MAX_CONFIDENCE = {
    TIER_FIELD: 0.95,
    TIER_LAB: 0.85,
    TIER_STATIC: 0.75,
    TIER_SPECULATIVE: 0.6,
}
SPECULATIVE_HIGH_RAW_CONFIDENCE = 0.8
SPECULATIVE_OVERCLAIM_FACTOR = 0.85

# Multiplicative penalties, applied once per issue
WARNING_PENALTY = 0.9
ERROR_PENALTY = 0.7


def base_source(source: str) -> str:
    """'psi.audits.lcp' -> 'psi'; unknown sources are returned unchanged."""
    for allowed in ALLOWED_SOURCES:
        if source == allowed or source.startswith(allowed + '.'):
            return allowed
    return source


def is_known_source(source: str) -> bool:
    return base_source(source) in ALLOWED_SOURCES


def source_tier(source: str) -> str:
    return SOURCE_TIERS.get(base_source(source), TIER_SPECULATIVE)
