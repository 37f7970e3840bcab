"""Threshold tables shared by gating, graph building and validation."""
from typing import Dict, Optional

from cwv_findings.core.errors import ConfigurationError

# Core Web Vitals boundaries (web.dev/vitals): <= good is good, <= needs_improvement needs work
CWV_METRICS: Dict[str, Dict[str, float]] = {
    'LCP': {'good': 2500, 'needs_improvement': 4000},
    'FCP': {'good': 1800, 'needs_improvement': 3000},
    'TBT': {'good': 200, 'needs_improvement': 600},
    'CLS': {'good': 0.1, 'needs_improvement': 0.25},
    'INP': {'good': 200, 'needs_improvement': 500},
    'TTFB': {'good': 800, 'needs_improvement': 1800},
    'SPEED_INDEX': {'good': 3400, 'needs_improvement': 5800},
}

# Target thresholds for metric nodes in the causal graph. Metrics missing
# here get no graph node.
GRAPH_METRIC_THRESHOLDS: Dict[str, float] = {
    'LCP': 2500,
    'CLS': 0.1,
    'INP': 200,
    'TBT': 300,
    'TTFB': 800,
    'FCP': 1800,
}

# Device-aware gating thresholds
DEVICE_THRESHOLDS: Dict[str, Dict[str, float]] = {
    'mobile': {
        'LCP_MS': 3000,
        'TBT_MS': 250,
        'REQUESTS': 150,
        'TRANSFER_BYTES': 3_000_000,
        'UNUSED_BYTES': 300_000,
        'UNUSED_RATIO': 0.30,
        'FIRST_PARTY_BYTES': 500_000,
        'BUNDLE_COUNT': 3,
        'CLS': 0.1,
        'THIRD_PARTY_COUNT': 5,
        'THIRD_PARTY_TIME': 500,
    },
    'desktop': {
        'LCP_MS': 2800,
        'TBT_MS': 300,
        'REQUESTS': 180,
        'TRANSFER_BYTES': 3_500_000,
        'UNUSED_BYTES': 400_000,
        'UNUSED_RATIO': 0.30,
        'FIRST_PARTY_BYTES': 700_000,
        'BUNDLE_COUNT': 3,
        'CLS': 0.1,
        'THIRD_PARTY_COUNT': 5,
        'THIRD_PARTY_TIME': 500,
    },
}

# Gating rules reference thresholds by these keys
GATING_THRESHOLD_KEYS: Dict[str, str] = {
    'requests': 'REQUESTS',
    'transferBytes': 'TRANSFER_BYTES',
    'unusedBytes': 'UNUSED_BYTES',
    'unusedRatio': 'UNUSED_RATIO',
    'firstPartyBytes': 'FIRST_PARTY_BYTES',
    'bundleCount': 'BUNDLE_COUNT',
    'cls': 'CLS',
    'thirdPartyCount': 'THIRD_PARTY_COUNT',
    'thirdPartyTime': 'THIRD_PARTY_TIME',
    'lcpMs': 'LCP_MS',
    'tbtMs': 'TBT_MS',
}

DEVICE_TYPES = tuple(DEVICE_THRESHOLDS)


def get_device_thresholds(device_type: str) -> Dict[str, float]:
    """Gating thresholds for a device class, keyed by gating threshold key."""
    if device_type not in DEVICE_THRESHOLDS:
        raise ConfigurationError(f"Invalid device type: {device_type}. Must be one of {list(DEVICE_TYPES)}")
    table = DEVICE_THRESHOLDS[device_type]
    return {key: table[name] for key, name in GATING_THRESHOLD_KEYS.items() if name in table}


def get_device_threshold(device_type: str, threshold_key: str) -> float:
    thresholds = get_device_thresholds(device_type)
    if threshold_key not in thresholds:
        raise ConfigurationError(f"No threshold '{threshold_key}' defined for device type {device_type}")
    return thresholds[threshold_key]


def get_metric_status(metric: str, value: Optional[float]) -> str:
    """Rate a metric value as good / needs-improvement / poor (or unknown)."""
    bounds = CWV_METRICS.get(metric)
    if bounds is None or value is None:
        return 'unknown'
    if value <= bounds['good']:
        return 'good'
    if value <= bounds['needs_improvement']:
        return 'needs-improvement'
    return 'poor'
