import os
import logging
from anthropic import Anthropic
from typing import Any, Dict, Optional

from cwv_findings.core.config import AppConfig
from cwv_findings.core.errors import ConfigurationError
from cwv_findings.prompts.findings_prompts import PERFORMANCE_ANALYST_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class LLMHelperMixin:
    """Mixin providing structured LLM calls and client management for analysis tasks."""
    DEFAULT_MODEL: Optional[str] = None
    DEFAULT_MAX_TOKENS: Optional[int] = None
    DEFAULT_TEMPERATURE: Optional[float] = None

    def _resolve_system_prompt(self, system: Optional[str]) -> str:
        base = PERFORMANCE_ANALYST_SYSTEM_PROMPT
        if system is not None and system.strip():
            return f"{base}\n\n{system}"
        return base

    def _resolve_model_params(self, max_tokens: Optional[int], temperature: Optional[float]):
        """Resolve model parameters from agent defaults or AppConfig fallback."""
        claude_cfg = AppConfig.claude
        model = self.DEFAULT_MODEL or claude_cfg.model
        max_toks = max_tokens if max_tokens is not None else (self.DEFAULT_MAX_TOKENS or claude_cfg.max_tokens)
        if temperature is not None:
            temp = temperature
        elif self.DEFAULT_TEMPERATURE is not None:
            temp = self.DEFAULT_TEMPERATURE
        else:
            temp = claude_cfg.temperature
        return model, max_toks, temp

    def format_prompt(self, template: str, **kwargs) -> str:
        return template.format(**kwargs)

    def _call_llm_structured(
        self,
        prompt: str,
        schema: Dict,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        system: Optional[str] = None,
    ) -> Dict:
        """Call LLM with a forced tool schema and return the tool input block."""
        model, max_tokens, temperature = self._resolve_model_params(max_tokens, temperature)
        kwargs: Dict[str, Any] = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=self._resolve_system_prompt(system),
            messages=[{"role": "user", "content": prompt}],
            tools=[schema],
            tool_choice={"type": "tool", "name": schema["name"]},
        )
        logger.debug("Calling %s with tool %s", model, schema["name"])
        response = self.client.messages.create(**kwargs)
        for block in response.content:
            if getattr(block, "type", None) == "tool_use" and getattr(block, "name", None) == schema["name"]:
                return block.input
        raise ValueError(f"Expected tool_use response, got: {response.content}")

    @property
    def client(self) -> Anthropic:
        """Get or initialize Anthropic client from _client or API key."""
        if getattr(self, "_client", None) is not None:
            return self._client
        api_key = getattr(self, "_api_key", None) or AppConfig.claude.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY required for LLM calls or provide a client via set_client")
        self._client = Anthropic(api_key=api_key)
        return self._client

    def set_client(self, client: Anthropic) -> None:
        """Inject or replace Anthropic client instance."""
        self._client = client
