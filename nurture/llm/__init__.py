"""Decision oracle: prompt rendering, model access and output parsing."""

from nurture.llm.client import LLMClient, LLMRequest, LLMResponse
from nurture.llm.oracle import DecisionOracle

__all__ = ["DecisionOracle", "LLMClient", "LLMRequest", "LLMResponse"]
