import json
import logging
from typing import Any, Dict, List, Optional

from cwv_findings.core.errors import PARSE_ERROR, TerminalTaskError
from cwv_findings.prompts.finding_schemas import FINDINGS_OUTPUT_SCHEMA
from cwv_findings.prompts.findings_prompts import FINDINGS_PROMPT
from cwv_findings.services.llm_helper import LLMHelperMixin
from cwv_findings.services.task_scheduler import AnalysisTask

logger = logging.getLogger(__name__)


class FindingsAgent(LLMHelperMixin):
    """
    Asks the model for structured findings about one data source.

    Returns raw finding dicts; parsing and validation happen downstream.
    API errors propagate so the scheduler can classify and retry them.
    """
    MAX_PAYLOAD_CHARS = 60_000

    def __init__(self, source: str, page_url: str = "", device_type: str = "mobile"):
        self.source = source
        self.page_url = page_url
        self.device_type = device_type

    def run(self, payload: Any, metrics: Optional[Dict[str, float]] = None) -> List[Dict[str, Any]]:
        prompt = self.format_prompt(
            FINDINGS_PROMPT,
            source=self.source,
            page_url=self.page_url or "the page",
            device_type=self.device_type,
            metrics=json.dumps(metrics or {}, indent=2),
            payload=self._serialize(payload),
        )
        response = self._call_llm_structured(prompt, FINDINGS_OUTPUT_SCHEMA)
        findings = response.get("findings")
        if not isinstance(findings, list):
            raise TerminalTaskError(f"{self.source} response has no findings list", code=PARSE_ERROR)
        for item in findings:
            if isinstance(item, dict):
                item.setdefault("producedBy", self.source)
        logger.debug("%s agent returned %d findings", self.source, len(findings))
        return findings

    def _serialize(self, payload: Any) -> str:
        text = payload if isinstance(payload, str) else json.dumps(payload, default=str, indent=2)
        if len(text) > self.MAX_PAYLOAD_CHARS:
            logger.debug("Truncating %s payload from %d chars", self.source, len(text))
            text = text[:self.MAX_PAYLOAD_CHARS] + "\n[truncated]"
        return text

    def as_task(self, payload: Any, gate_type: Optional[str] = None,
                metrics: Optional[Dict[str, float]] = None) -> AnalysisTask:
        """Wrap a call to this agent as a schedulable task."""
        return AnalysisTask(
            task_id=self.source,
            run=lambda: self.run(payload, metrics),
            description=f"{self.source} findings",
            gate_type=gate_type,
        )
