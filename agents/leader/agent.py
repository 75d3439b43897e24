"""
Leader Agent

System controller and default handler. Every request that no other agent
claims ends up here, so it answers general questions directly and carries a
few small utility tools:
- compare: compare two numbers
- two_sum: add two numbers
- current_time: current date and time in UTC
"""

import logging
from datetime import datetime, UTC
from typing import Optional

from agents.shared.base_agent import Agent
from agents.shared.llm_client import LanguageModel
from agents.shared.schemas import ToolResult
from agents.shared.tools import Tool, ToolRegistry

logger = logging.getLogger(__name__)

LEADER_AGENT_NAME = "leader-agent"

LEADER_SYSTEM_PROMPT = (
    "You are the leader agent of a multi-agent system.\n"
    "You handle general requests and every request no specialist agent claims.\n"
    "Answer accurately and concisely, and use your tools for arithmetic and the current time.\n"
    "Format replies in Markdown."
)

_NUMBER_PAIR_SCHEMA = {
    "type": "object",
    "properties": {
        "num1": {"type": "number", "description": "First number"},
        "num2": {"type": "number", "description": "Second number"},
    },
    "required": ["num1", "num2"],
}


def compare(num1: float, num2: float) -> ToolResult:
    """Compare two numbers"""
    if num1 > num2:
        result = "num1 is greater than num2"
    elif num1 < num2:
        result = "num1 is less than num2"
    else:
        result = "num1 is equal to num2"
    logger.info(f"compare called with num1={num1}, num2={num2}: {result}")
    return ToolResult.from_text(
        f"Comparing {num1} and {num2}: {result}",
        structured_content={"result": result}
    )


def two_sum(num1: float, num2: float) -> ToolResult:
    """Add two numbers"""
    result = num1 + num2
    logger.info(f"two_sum called with num1={num1}, num2={num2}: {result}")
    return ToolResult.from_text(
        f"The sum of {num1} and {num2} is {result}",
        structured_content={"result": result}
    )


def current_time() -> dict:
    """Current date and time in UTC"""
    now = datetime.now(UTC)
    return {"utc": now.isoformat(), "weekday": now.strftime("%A")}


def build_leader_tools(timeout: Optional[float] = None) -> ToolRegistry:
    return ToolRegistry(
        tools=[
            Tool(
                name="compare",
                description="Compare two numbers and report which one is larger.",
                handler=compare,
                input_schema=_NUMBER_PAIR_SCHEMA
            ),
            Tool(
                name="two_sum",
                description="Add two numbers and return the sum.",
                handler=two_sum,
                input_schema=_NUMBER_PAIR_SCHEMA
            ),
            Tool(
                name="current_time",
                description="Return the current date and time in UTC.",
                handler=current_time,
                input_schema={"type": "object", "properties": {}}
            ),
        ],
        timeout=timeout
    )


def build_leader_agent(llm: LanguageModel, tool_timeout: Optional[float] = None) -> Agent:
    """
    Build the leader agent.

    Args:
        llm: LLM capability
        tool_timeout: Deadline for each tool call

    Returns:
        Agent to register with AgentRegistry.register_leader
    """
    return Agent(
        name=LEADER_AGENT_NAME,
        llm=llm,
        description=(
            "System controller and general assistant. Handles general questions, "
            "number comparison and addition, the current time, and any request "
            "no specialist agent is suited for."
        ),
        keywords=["leader", "default", "system"],
        aliases=["leader"],
        tools=build_leader_tools(timeout=tool_timeout),
        system_prompt=LEADER_SYSTEM_PROMPT
    )
