"""Test data factories for the Agora engine."""

from tests.factories.agent_factory import AgentFactory, fetch_agent
from tests.factories.debate_factory import (
    DebateFactory,
    MessageFactory,
    fetch_debate,
    fetch_message,
)

__all__ = [
    "AgentFactory",
    "DebateFactory",
    "MessageFactory",
    "fetch_agent",
    "fetch_debate",
    "fetch_message",
]
