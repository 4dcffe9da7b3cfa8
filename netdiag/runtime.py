"""Application runtime composition helpers."""
from __future__ import annotations

from functools import lru_cache
from typing import Tuple, Type

from netdiag.agents.base import ProbeAgent
from netdiag.agents.dns import DNSAgent
from netdiag.agents.ip import IPAgent
from netdiag.agents.network import NetworkAgent
from netdiag.agents.performance import PerformanceAgent
from netdiag.agents.security import SecurityAgent
from netdiag.config import Config, config
from netdiag.core.models import AgentDescriptor
from netdiag.orchestration.analyzer import Analyzer
from netdiag.orchestration.dispatcher import Dispatcher
from netdiag.orchestration.runner import AgentRunner
from netdiag.services.llm_client import AnthropicClient

# Order in which agents are announced to the client.
_AGENT_CATALOG: Tuple[Type[ProbeAgent], ...] = (
    IPAgent,
    DNSAgent,
    SecurityAgent,
    NetworkAgent,
    PerformanceAgent,
)


def get_config() -> Config:
    return config


@lru_cache
def get_llm_client() -> AnthropicClient:
    return AnthropicClient(config.anthropic)


@lru_cache
def get_runner() -> AgentRunner:
    return AgentRunner(
        get_llm_client(),
        max_turns=config.runtime.max_turns,
        max_tokens=config.anthropic.max_tokens,
        transport_retries=config.runtime.transport_retries,
        retry_delay=config.runtime.retry_delay,
    )


@lru_cache
def get_agents() -> Tuple[AgentDescriptor, ...]:
    return tuple(
        agent_cls(timeout=config.runtime.probe_timeout).describe()
        for agent_cls in _AGENT_CATALOG
    )


@lru_cache
def get_dispatcher() -> Dispatcher:
    return Dispatcher(get_runner(), get_agents())


@lru_cache
def get_analyzer() -> Analyzer:
    return Analyzer(get_runner())
