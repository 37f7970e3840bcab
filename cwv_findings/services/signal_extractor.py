import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import numpy as np
import pandas as pd

from cwv_findings.core.types import SignalSnapshot

logger = logging.getLogger(__name__)


def _clean_value(value: Any) -> Optional[float]:
    """Return a finite float or None for NaN/inf/non-numeric values."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if np.isfinite(number) else None


def _column(frame: pd.DataFrame, name: str) -> pd.Series:
    if name in frame.columns:
        return pd.to_numeric(frame[name], errors='coerce')
    return pd.Series(np.nan, index=frame.index, dtype='float64')


def _size_column(frame: pd.DataFrame, name: str) -> pd.Series:
    # HAR uses -1 for "unknown size"
    sizes = _column(frame, name)
    return sizes.where(sizes >= 0)


def _host(url: Any) -> str:
    try:
        host = urlparse(str(url)).hostname or ''
    except ValueError:
        return ''
    return host[4:] if host.startswith('www.') else host


class SignalExtractor:
    """
    Derives the gate's signal snapshot from raw collaborator payloads.

    Payloads that were not collected produce no keys at all, so the gate
    sees missing data (fail closed) instead of zeros.
    """

    PSI_NUMERIC_AUDITS = {
        'lcp': 'largest-contentful-paint',
        'tbt': 'total-blocking-time',
        'cls': 'cumulative-layout-shift',
    }
    # Boolean flags: audit score < 1 means the problem was detected
    PSI_FLAG_AUDITS = {
        'redirects': 'redirects',
        'reduceUnusedJS': 'unused-javascript',
        'serverResponseSlow': 'server-response-time',
        'renderBlocking': 'render-blocking-resources',
        'usesRelPreconnect': 'uses-rel-preconnect',
    }
    LONG_TASK_MIN_MS = 200
    SCRIPT_EXTENSIONS = ('.js', '.mjs')

    def __init__(self, page_url: Optional[str] = None):
        self.page_url = page_url
        self.page_host = _host(page_url) if page_url else ''

    # -- PSI
    @staticmethod
    def _audits(psi: Optional[Dict]) -> Dict[str, Any]:
        if not psi:
            return {}
        root = psi.get('data', psi)
        return ((root or {}).get('lighthouseResult') or {}).get('audits') or {}

    def extract_psi_signals(self, psi: Optional[Dict]) -> Dict[str, Any]:
        audits = self._audits(psi)
        signals: Dict[str, Any] = {}
        for key, audit_id in self.PSI_NUMERIC_AUDITS.items():
            audit = audits.get(audit_id)
            if audit:
                value = _clean_value(audit.get('numericValue'))
                if value is not None:
                    signals[key] = value
        for key, audit_id in self.PSI_FLAG_AUDITS.items():
            audit = audits.get(audit_id)
            if audit is None:
                continue
            score = _clean_value(audit.get('score'))
            signals[key] = score is not None and score < 1
        return signals

    # -- HAR
    @staticmethod
    def _har_frame(har: Optional[Dict]) -> Optional[pd.DataFrame]:
        entries = ((har or {}).get('log') or {}).get('entries')
        if not entries:
            return None
        frame = pd.json_normalize(entries)
        # Prefer _transferSize, then bodySize, then content.size
        sizes = (
            _size_column(frame, 'response._transferSize')
            .fillna(_size_column(frame, 'response.bodySize'))
            .fillna(_size_column(frame, 'response.content.size'))
            .fillna(0)
        )
        frame['transfer_size'] = sizes
        return frame

    def compute_har_stats(self, har: Optional[Dict]) -> Dict[str, Any]:
        if har is None:
            return {}
        frame = self._har_frame(har)
        if frame is None:
            return {'entriesCount': 0, 'transferBytes': 0}
        return {
            'entriesCount': int(len(frame)),
            'transferBytes': int(frame['transfer_size'].sum()),
        }

    def compute_code_stats(self, har: Optional[Dict]) -> Dict[str, Any]:
        """First-party script weight and bundle count, from HAR entries."""
        if har is None or not self.page_host:
            return {}
        frame = self._har_frame(har)
        if frame is None:
            return {'firstPartyBytes': 0, 'bundleCount': 0}
        urls = frame['request.url'] if 'request.url' in frame.columns else pd.Series('', index=frame.index)
        hosts = urls.map(_host)
        first_party = (hosts == self.page_host) | hosts.str.endswith('.' + self.page_host)
        paths = urls.map(lambda u: urlparse(str(u)).path.lower())
        is_script = paths.str.endswith(self.SCRIPT_EXTENSIONS)
        if 'response.content.mimeType' in frame.columns:
            is_script = is_script | frame['response.content.mimeType'].fillna('').str.contains('javascript')
        scripts = frame[first_party & is_script]
        return {
            'firstPartyBytes': int(scripts['transfer_size'].sum()),
            'bundleCount': int(len(scripts)),
        }

    # -- Coverage
    def compute_coverage_stats(self, coverage: Optional[Dict]) -> Dict[str, Any]:
        if not coverage:
            return {}
        summary = coverage.get('summary')
        if summary:
            unused_bytes = _clean_value(summary.get('unusedBytes'))
            unused_percent = _clean_value(summary.get('unusedPercent'))
            stats: Dict[str, Any] = {}
            if unused_bytes is not None:
                stats['unusedBytes'] = unused_bytes
            if unused_percent is not None:
                stats['unusedRatio'] = unused_percent / 100
            return stats

        files = coverage.get('files') or []
        if not files:
            return {}
        frame = pd.DataFrame(files)
        total = _column(frame, 'totalBytes').fillna(0).sum()
        unused = _column(frame, 'unusedBytes').fillna(0).sum()
        return {
            'unusedBytes': float(unused),
            'unusedRatio': float(unused / total) if total > 0 else 0.0,
        }

    # -- Performance observer
    def compute_perf_signals(self, perf_entries: Optional[List[Dict]]) -> Dict[str, Any]:
        if perf_entries is None:
            return {}
        if not perf_entries:
            return {'hasLongTasksPreLcp': False, 'totalLongTaskMsPreLcp': 0.0, 'lcpTimeMs': None}
        frame = pd.DataFrame(perf_entries)
        entry_types = frame['entryType'] if 'entryType' in frame.columns else pd.Series('', index=frame.index)
        start = _column(frame, 'startTime')
        duration = _column(frame, 'duration').fillna(0)

        lcp_starts = start[entry_types == 'largest-contentful-paint'].dropna()
        lcp_time = _clean_value(lcp_starts.min()) if not lcp_starts.empty else None

        long_tasks = entry_types == 'longtask'
        if lcp_time is not None:
            long_tasks = long_tasks & (start <= lcp_time)
        pre_lcp = duration[long_tasks]
        return {
            'hasLongTasksPreLcp': bool((pre_lcp >= self.LONG_TASK_MIN_MS).any()),
            'totalLongTaskMsPreLcp': float(pre_lcp.sum()),
            'lcpTimeMs': lcp_time,
        }

    def build_snapshot(
        self,
        psi: Optional[Dict] = None,
        har: Optional[Dict] = None,
        coverage: Optional[Dict] = None,
        perf_entries: Optional[List[Dict]] = None,
    ) -> SignalSnapshot:
        """Combine every available payload into one gate snapshot."""
        psi_signals = self.extract_psi_signals(psi)
        data: Dict[str, Any] = {}
        data.update(self.compute_har_stats(har))
        data.update(self.compute_code_stats(har))
        data.update(self.compute_coverage_stats(coverage))
        data.update(self.compute_perf_signals(perf_entries))
        for key in self.PSI_NUMERIC_AUDITS:
            if key in psi_signals:
                data[key] = psi_signals[key]
        flags = {key: value for key, value in psi_signals.items() if key in self.PSI_FLAG_AUDITS}
        logger.debug("Built signal snapshot", extra={"data_keys": sorted(data), "psi_keys": sorted(flags)})
        return SignalSnapshot(data=data, psi=flags)

    @staticmethod
    def metric_values(snapshot: SignalSnapshot) -> Dict[str, float]:
        """Current metric values (upper-case metric names) available in a snapshot."""
        mapping = {'lcp': 'LCP', 'tbt': 'TBT', 'cls': 'CLS'}
        values = {}
        for key, metric in mapping.items():
            value = _clean_value(snapshot.data.get(key))
            if value is not None:
                values[metric] = value
        return values
