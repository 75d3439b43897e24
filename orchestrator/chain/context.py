"""
Chain context and options

One ChainContext per inbound request (one per agent in fan-out). It is
created by the orchestrator, written by the chain steps in order, and
discarded after the answer is returned.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from agents.shared.base_agent import Agent
from agents.shared.schemas import ChatMessage, IntentResult, ReActStep

from ..progress_publisher import ProgressPublisher


@dataclass
class ChainOptions:
    """Per-request execution options"""
    max_steps: int = 8
    react_verbose: bool = False
    temperature: Optional[float] = None
    stream: bool = False
    max_tool_errors: int = 3
    max_parse_retries: int = 2
    include_tool_evidence: bool = True
    enhance_with_llm: bool = False
    llm_timeout: Optional[float] = None
    tool_timeout: Optional[float] = None
    initial_steps: List[ReActStep] = field(default_factory=list)


@dataclass
class ChainContext:
    """Mutable state carried through the chain steps"""
    messages: List[ChatMessage]
    agent: Agent
    options: ChainOptions = field(default_factory=ChainOptions)
    correlation_id: str = ""
    progress_publisher: Optional[ProgressPublisher] = None
    intent: Optional[IntentResult] = None
    react_results: List[ReActStep] = field(default_factory=list)
    final_answer: Optional[str] = None
    error: Optional[str] = None
    answer_streamed: bool = False
    react_exhausted: bool = False

    @property
    def agent_name(self) -> str:
        return self.agent.name

    def set_intent(self, intent: IntentResult) -> None:
        """Intent is written once and never replaced"""
        if self.intent is not None:
            raise RuntimeError("intent already set for this context")
        self.intent = intent

    def successful_tool_steps(self) -> List[ReActStep]:
        return [
            step for step in self.react_results
            if step.action == "tool_call" and not step.is_error
        ]
