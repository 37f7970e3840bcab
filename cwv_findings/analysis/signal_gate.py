import math
import numbers
import logging
import operator
from typing import Any, Dict, Optional, Union

from cwv_findings.core.errors import ConfigurationError
from cwv_findings.core.thresholds import get_device_thresholds
from cwv_findings.core.types import GatingDecision, SignalResult, SignalSnapshot

logger = logging.getLogger(__name__)

TASK_HAR = "har"
TASK_COVERAGE = "coverage"
TASK_CODE = "code"

OPERATORS = {
    '>': operator.gt,
    '<': operator.lt,
    '>=': operator.ge,
    '<=': operator.le,
    '==': operator.eq,
}

# Declarative gating rules per task type. Data signals compare a measured
# value with a device threshold; psi signals are audit flags (True = problem).
TASK_RULES: Dict[str, Dict[str, Any]] = {
    TASK_HAR: {
        'description': 'Network trace analysis',
        'data_signals': [
            {'name': 'Request Count', 'metric': 'entriesCount', 'operator': '>', 'threshold_key': 'requests'},
            {'name': 'Transfer Size', 'metric': 'transferBytes', 'operator': '>', 'threshold_key': 'transferBytes'},
        ],
        'psi_signals': [
            {'name': 'Redirects', 'metric': 'redirects'},
            {'name': 'Server Response Slow', 'metric': 'serverResponseSlow'},
            {'name': 'Render Blocking', 'metric': 'renderBlocking'},
        ],
        'min_signals': 1,
    },
    TASK_COVERAGE: {
        'description': 'Code coverage analysis',
        'data_signals': [
            {'name': 'Unused Bytes', 'metric': 'unusedBytes', 'operator': '>', 'threshold_key': 'unusedBytes'},
            {'name': 'Unused Ratio', 'metric': 'unusedRatio', 'operator': '>', 'threshold_key': 'unusedRatio'},
        ],
        'psi_signals': [
            {'name': 'Unused JavaScript', 'metric': 'reduceUnusedJS'},
            {'name': 'Render Blocking', 'metric': 'renderBlocking'},
        ],
        'min_signals': 1,
    },
    TASK_CODE: {
        'description': 'First-party code analysis',
        'data_signals': [
            {'name': 'First-Party Bytes', 'metric': 'firstPartyBytes', 'operator': '>', 'threshold_key': 'firstPartyBytes'},
            {'name': 'Bundle Count', 'metric': 'bundleCount', 'operator': '>', 'threshold_key': 'bundleCount'},
        ],
        'psi_signals': [
            {'name': 'Unused JavaScript', 'metric': 'reduceUnusedJS'},
        ],
        'min_signals': 1,
    },
}


def _is_missing(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return True
    if not isinstance(value, numbers.Real):
        return True
    return math.isnan(value)


class SignalGate:
    """
    Decides whether an expensive analysis task is worth running.

    Pure: the same snapshot always yields the same decision. Missing data
    never counts as a passed signal.
    """

    def __init__(self, device_type: str = 'mobile', rules: Optional[Dict[str, Dict[str, Any]]] = None):
        self.device_type = device_type
        self.thresholds = get_device_thresholds(device_type)
        self.rules = rules if rules is not None else TASK_RULES

    def decide(self, task_type: str, signals: Union[SignalSnapshot, Dict[str, Any]]) -> GatingDecision:
        """Evaluate every signal of the task's rule and compare the pass count with min_signals.

        Raises:
            ConfigurationError: unknown task type, operator or threshold key
        """
        rule = self.rules.get(task_type)
        if rule is None:
            raise ConfigurationError(f"Unknown task type: {task_type}. Must be one of {sorted(self.rules)}")

        data, psi = self._split(signals)
        results = [self._evaluate_data_signal(s, data) for s in rule.get('data_signals', [])]
        results.extend(self._evaluate_psi_signal(s, psi) for s in rule.get('psi_signals', []))

        passed = sum(1 for r in results if r.passed)
        min_signals = rule.get('min_signals', 1)
        should_run = passed >= min_signals
        decision = GatingDecision(
            task_type=task_type,
            should_run=should_run,
            signals_passed=passed,
            signals_total=len(results),
            reason=self._reason(results, passed, min_signals, should_run),
            signals=results,
        )
        logger.debug(
            "Gating decision for %s: %s", task_type, "RUN" if should_run else "SKIP",
            extra={"device": self.device_type, "passed": passed, "total": len(results)},
        )
        return decision

    @staticmethod
    def _split(signals: Union[SignalSnapshot, Dict[str, Any], None]):
        if signals is None:
            return {}, {}
        if isinstance(signals, SignalSnapshot):
            return signals.data or {}, signals.psi or {}
        return signals.get('data') or {}, signals.get('psi') or {}

    def _evaluate_data_signal(self, rule_signal: Dict[str, Any], data: Dict[str, Any]) -> SignalResult:
        op_symbol = rule_signal.get('operator', '>')
        compare = OPERATORS.get(op_symbol)
        if compare is None:
            raise ConfigurationError(f"Unknown operator '{op_symbol}' in signal {rule_signal.get('name')}")
        threshold_key = rule_signal.get('threshold_key')
        if threshold_key not in self.thresholds:
            raise ConfigurationError(f"No threshold '{threshold_key}' defined for device type {self.device_type}")

        threshold = self.thresholds[threshold_key]
        value = data.get(rule_signal['metric'])
        passed = False if _is_missing(value) else bool(compare(value, threshold))
        return SignalResult(name=rule_signal['name'], passed=passed, value=value, threshold=threshold, operator=op_symbol)

    @staticmethod
    def _evaluate_psi_signal(rule_signal: Dict[str, Any], psi: Dict[str, Any]) -> SignalResult:
        value = psi.get(rule_signal['metric'])
        return SignalResult(name=rule_signal['name'], passed=value is True, value=value)

    @staticmethod
    def _reason(results, passed: int, min_signals: int, should_run: bool) -> str:
        if should_run:
            names = ', '.join(r.name for r in results if r.passed)
            return f"{passed}/{len(results)} signals passed (need {min_signals}): {names}"
        return f"Only {passed}/{len(results)} signals passed (need {min_signals})"

    def decide_all(self, signals: Union[SignalSnapshot, Dict[str, Any]]) -> Dict[str, GatingDecision]:
        return {task_type: self.decide(task_type, signals) for task_type in self.rules}
