"""Tests for SignalGate."""
import math

import pytest

from cwv_findings.core.errors import ConfigurationError
from cwv_findings.core.types import SignalSnapshot
from cwv_findings.analysis.signal_gate import SignalGate, TASK_RULES


class TestSignalGate:
    """Test suite for SignalGate."""

    def test_initialization(self):
        gate = SignalGate('desktop')
        assert gate.device_type == 'desktop'
        assert gate.thresholds['requests'] == 180

    def test_invalid_device_type(self):
        with pytest.raises(ConfigurationError):
            SignalGate('tablet')

    def test_request_count_above_threshold_runs(self):
        """200 requests against a mobile threshold of 150 is enough on its own."""
        gate = SignalGate('mobile')
        decision = gate.decide('har', {'data': {'entriesCount': 200, 'transferBytes': 1000}, 'psi': {}})
        assert decision.should_run is True
        assert decision.signals_passed >= 1
        assert decision.signals_total == 5
        assert 'Request Count' in decision.reason

    def test_no_signals_skips(self):
        gate = SignalGate('mobile')
        decision = gate.decide('har', {'data': {'entriesCount': 20, 'transferBytes': 1000}, 'psi': {}})
        assert decision.should_run is False
        assert decision.signals_passed == 0
        assert decision.reason.startswith('Only 0/5')

    def test_device_thresholds_differ(self):
        signals = {'data': {'entriesCount': 170}, 'psi': {}}
        assert SignalGate('mobile').decide('har', signals).should_run is True
        assert SignalGate('desktop').decide('har', signals).should_run is False

    def test_psi_flag_counts_only_when_true(self):
        gate = SignalGate('mobile')
        assert gate.decide('code', {'data': {}, 'psi': {'reduceUnusedJS': True}}).should_run is True
        assert gate.decide('code', {'data': {}, 'psi': {'reduceUnusedJS': False}}).should_run is False
        # Truthy but not True is not a detected problem
        assert gate.decide('code', {'data': {}, 'psi': {'reduceUnusedJS': 'yes'}}).should_run is False

    @pytest.mark.parametrize('value', [None, math.nan, 'many', True])
    def test_missing_or_invalid_data_fails_closed(self, value):
        gate = SignalGate('mobile')
        decision = gate.decide('coverage', {'data': {'unusedBytes': value}, 'psi': {}})
        assert decision.signals_passed == 0
        assert decision.should_run is False

    def test_accepts_signal_snapshot(self, sample_snapshot):
        decision = SignalGate('mobile').decide('coverage', sample_snapshot)
        assert decision.should_run is True
        assert decision.signals_passed == 4

    def test_empty_snapshot(self):
        decision = SignalGate('mobile').decide('har', SignalSnapshot())
        assert decision.should_run is False

    def test_unknown_task_type_raises(self):
        with pytest.raises(ConfigurationError, match='Unknown task type'):
            SignalGate('mobile').decide('fonts', {'data': {}, 'psi': {}})

    def test_unknown_operator_raises(self):
        rules = {'custom': {'data_signals': [{'name': 'X', 'metric': 'x', 'operator': '!=', 'threshold_key': 'requests'}],
                            'psi_signals': [], 'min_signals': 1}}
        with pytest.raises(ConfigurationError, match='operator'):
            SignalGate('mobile', rules=rules).decide('custom', {'data': {'x': 1}})

    def test_missing_threshold_key_raises(self):
        rules = {'custom': {'data_signals': [{'name': 'X', 'metric': 'x', 'operator': '>', 'threshold_key': 'nope'}],
                            'psi_signals': [], 'min_signals': 1}}
        with pytest.raises(ConfigurationError, match='threshold'):
            SignalGate('mobile', rules=rules).decide('custom', {'data': {'x': 1}})

    @pytest.mark.parametrize('symbol,value,expected', [
        ('>', 150, False), ('>=', 150, True), ('<', 100, True), ('<=', 151, False), ('==', 150, True),
    ])
    def test_operators(self, symbol, value, expected):
        rules = {'custom': {'data_signals': [{'name': 'X', 'metric': 'x', 'operator': symbol, 'threshold_key': 'requests'}],
                            'psi_signals': [], 'min_signals': 1}}
        decision = SignalGate('mobile', rules=rules).decide('custom', {'data': {'x': value}})
        assert decision.should_run is expected

    def test_min_signals_respected(self):
        rules = {'strict': dict(TASK_RULES['har'], min_signals=2)}
        gate = SignalGate('mobile', rules=rules)
        assert gate.decide('strict', {'data': {'entriesCount': 200}}).should_run is False
        assert gate.decide('strict', {'data': {'entriesCount': 200}, 'psi': {'redirects': True}}).should_run is True

    def test_decide_all(self, sample_snapshot):
        decisions = SignalGate('mobile').decide_all(sample_snapshot)
        assert set(decisions) == {'har', 'coverage', 'code'}
        assert decisions['har'].should_run is True
        assert decisions['code'].should_run is True
