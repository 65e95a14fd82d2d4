# ============================================================================
# EXAMPLE AGENTS
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Examples - Sample agent implementations
# PURPOSE: Demonstrate agent registration and implementation patterns
# CREATED: 18 OCT 2026
# ============================================================================
"""
Example Agents

Sample implementations showing how to write agents. These back the
bundled ensembles and the test suite, and serve as templates for real
agents (HTTP, model calls, storage) that live outside this package.

    registry = AgentRegistry()
    register_example_agents(registry)
"""

import asyncio
import logging
import random
from typing import Any, Dict

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateError

from agents.registry import AgentContext, AgentRegistry, AgentResult

logger = logging.getLogger(__name__)


_template_env = Environment(
    loader=BaseLoader(),
    autoescape=False,
    undefined=StrictUndefined,
)

_OPERATIONS = {
    "add": lambda a, b: a + b,
    "subtract": lambda a, b: a - b,
    "multiply": lambda a, b: a * b,
    "divide": lambda a, b: a / b,
}


# ============================================================================
# BASIC AGENTS
# ============================================================================

async def echo_agent(input: Any, ctx: AgentContext) -> AgentResult:
    """
    Echoes its input back as output.

    Useful for wiring checks: the output is exactly the resolved input.
    """
    logger.info(f"Echo agent called with input: {input}")
    return AgentResult.success_result(output=input)


def math_agent(input: Dict[str, Any], ctx: AgentContext) -> AgentResult:
    """
    Binary arithmetic on numbers.

    Input:
        a: left operand
        b: right operand
        op: add | subtract | multiply | divide (default add)

    Output:
        {"result": <number>}
    """
    op = input.get("op", "add")
    if op not in _OPERATIONS:
        return AgentResult.failure_result(f"Unknown operation: {op}")

    try:
        a = float(input["a"])
        b = float(input["b"])
    except (KeyError, TypeError, ValueError) as e:
        return AgentResult.failure_result(f"Invalid operands: {e}")

    if op == "divide" and b == 0:
        return AgentResult.failure_result("Division by zero")

    result = _OPERATIONS[op](a, b)
    if result.is_integer():
        result = int(result)
    return AgentResult.success_result(output={"result": result})


def template_agent(input: Dict[str, Any], ctx: AgentContext) -> AgentResult:
    """
    Renders a Jinja2 template.

    Input:
        template: template text
        data: variables available to the template
    """
    template = input.get("template", "")
    data = input.get("data") or {}
    try:
        text = _template_env.from_string(template).render(**data)
    except TemplateError as e:
        return AgentResult.failure_result(f"Template rendering failed: {e}")
    return AgentResult.success_result(output={"text": text})


async def sleep_agent(input: Dict[str, Any], ctx: AgentContext) -> AgentResult:
    """
    Sleeps for a duration (for testing deadlines).

    Input:
        duration_ms: How long to sleep (default 1000)
    """
    duration_ms = float((input or {}).get("duration_ms", 1000))
    logger.info(f"Sleeping for {duration_ms} ms")

    await asyncio.sleep(duration_ms / 1000)

    return AgentResult.success_result(output={"slept_ms": duration_ms})


async def fail_agent(input: Dict[str, Any], ctx: AgentContext) -> AgentResult:
    """
    Always fails.

    Used for testing try/catch and retry behavior.
    """
    error_message = (input or {}).get("error_message", "Intentional failure for testing")
    return AgentResult.failure_result(error_message)


async def flaky_agent(input: Dict[str, Any], ctx: AgentContext) -> AgentResult:
    """
    Echo agent that fails randomly at a configurable rate.

    Input:
        failure_rate: Probability of failure per attempt (0.0-1.0, default 0.2)
    """
    failure_rate = float((input or {}).get("failure_rate", 0.2))

    if random.random() < failure_rate:
        logger.warning(
            f"Flaky agent: random failure (rate={failure_rate}, attempt={ctx.attempt})"
        )
        return AgentResult.failure_result(
            f"Random failure (rate={failure_rate}, attempt={ctx.attempt})"
        )

    return AgentResult.success_result(output={"echoed": input, "attempt": ctx.attempt})


# ============================================================================
# REGISTRATION
# ============================================================================

EXAMPLE_AGENTS = {
    "echo": (echo_agent, "Echoes input back as output"),
    "math": (math_agent, "Binary arithmetic: add, subtract, multiply, divide"),
    "template": (template_agent, "Renders a Jinja2 template"),
    "sleep": (sleep_agent, "Sleeps for duration_ms (for testing deadlines)"),
    "fail": (fail_agent, "Always fails (for testing error handling)"),
    "flaky": (flaky_agent, "Fails at a configurable rate (for testing retries)"),
}


def register_example_agents(registry: AgentRegistry) -> AgentRegistry:
    """Register every example agent on `registry`."""
    for agent_id, (func, description) in EXAMPLE_AGENTS.items():
        registry.register(agent_id, description=description, tags=["example"])(func)
    return registry


__all__ = [
    "echo_agent",
    "math_agent",
    "template_agent",
    "sleep_agent",
    "fail_agent",
    "flaky_agent",
    "EXAMPLE_AGENTS",
    "register_example_agents",
]
