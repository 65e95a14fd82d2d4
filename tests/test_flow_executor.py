# ============================================================================
# FLOW EXECUTOR TESTS
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Tests - Control-flow interpreter
# PURPOSE: Verify every step type, error propagation and run results
# CREATED: 18 OCT 2026
# ============================================================================
"""
Flow Executor Tests

Covers:
1. End-to-end runs and output mappings
2. sequence ordering
3. parallel (all / any), partial failure keeps sibling results
4. branch, switch
5. try / catch / finally
6. foreach (sequential, batched, breakWhen)
7. while (termination and iteration bound)
8. map-reduce
9. Validation failures, control-step deadlines and guards
10. Isolation of run data from agents, shared state updates

Run with:
    pytest tests/test_flow_executor.py -v
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from agents.registry import AgentRegistry, AgentResult
from core.config import Defaults
from core.contracts import RunStatus, StepStatus
from core.models import EnsembleDefinition
from orchestrator.executor import FlowExecutor


_OPS = {
    "add": lambda a, b: a + b,
    "multiply": lambda a, b: a * b,
}


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def calls():
    """(step_id, input) per agent invocation, in order."""
    return []


@pytest.fixture
def registry(calls):
    registry = AgentRegistry()
    counter = {"n": 0}

    def arith(input, ctx):
        calls.append((ctx.step_id, input))
        return _OPS[input["op"]](input["a"], input["b"])

    registry.register("double")(arith)
    registry.register("add22")(arith)
    registry.register("arith")(arith)

    @registry.register("echo")
    async def echo(input, ctx):
        calls.append((ctx.step_id, input))
        return input

    @registry.register("fail")
    async def fail(input, ctx):
        calls.append((ctx.step_id, input))
        return AgentResult.failure_result(input.get("message", "boom"))

    @registry.register("slow")
    async def slow(input, ctx):
        calls.append((ctx.step_id, input))
        await asyncio.sleep(input.get("ms", 1000) / 1000)
        return {"slept": input.get("ms", 1000)}

    @registry.register("counter")
    async def count(input, ctx):
        counter["n"] += 1
        calls.append((ctx.step_id, input))
        return {"count": counter["n"], "done": counter["n"] >= input.get("until", 2)}

    @registry.register("mutate")
    async def mutate(input, ctx):
        input["items"].append("added")
        return input

    @registry.register("mutate-then-fail")
    async def mutate_then_fail(input, ctx):
        calls.append((ctx.step_id, list(input["items"])))
        input["items"].append("added")
        if ctx.attempt == 1:
            return AgentResult.failure_result("first attempt fails")
        return input

    @registry.register("stateful")
    async def stateful(input, ctx):
        calls.append((ctx.step_id, dict(ctx.state)))
        ctx.set_state(input.get("set", {}))
        if input.get("fail"):
            return AgentResult.failure_result("stateful failure")
        return {"seen": dict(ctx.state)}

    @registry.register("whoami")
    async def whoami(input, ctx):
        return {"ensemble": ctx.ensemble, "run_id": ctx.run_id, "step_id": ctx.step_id}

    return registry


@pytest.fixture
def executor(registry):
    async def no_sleep(seconds):
        return None

    return FlowExecutor(registry, defaults=Defaults(), sleep=no_sleep)


def ensemble(flow: List[Dict[str, Any]], output: Any = None, **extra) -> EnsembleDefinition:
    data = {"name": "test", "flow": flow, **extra}
    if output is not None:
        data["output"] = output
    return EnsembleDefinition.model_validate(data)


def run(executor, definition, input: Optional[Dict[str, Any]] = None, **kwargs):
    return asyncio.run(executor.execute(definition, input=input, **kwargs))


def step_ids(calls) -> List[str]:
    return [step_id for step_id, _ in calls]


# ============================================================================
# END TO END
# ============================================================================

class TestEndToEnd:
    """Test complete runs."""

    def test_double_then_add(self, executor):
        definition = ensemble(
            flow=[
                {"agent-call": "double", "input": {"a": "${input.n}", "op": "multiply", "b": 2}},
                {"agent-call": "add22", "input": {"a": "${double.output}", "op": "add", "b": 22}},
            ],
            output={"result": "${add22.output}"},
        )

        result = run(executor, definition, {"n": 10})

        assert result.status == RunStatus.SUCCEEDED
        assert result.output == {"result": 42}
        assert [r.step_id for r in result.steps] == ["double", "add22"]
        assert result.error is None

    @pytest.mark.parametrize("items,expected", [
        ([], "none"),
        (["x"], "x"),
    ])
    def test_index_with_default_output(self, executor, items, expected):
        definition = ensemble(
            flow=[{"agent": "echo"}],
            output='${input.items[0] ?? "none"}',
        )
        result = run(executor, definition, {"items": items})
        assert result.output == expected

    def test_default_output_is_step_outputs(self, executor):
        definition = ensemble(flow=[
            {"agent": "echo", "id": "a", "input": {"v": 1}},
            {"agent": "echo", "id": "b", "input": {"v": "${a.output.v}"}},
        ])
        result = run(executor, definition)
        assert result.output == {"a": {"v": 1}, "b": {"v": 1}}

    def test_state_and_env_are_visible(self, executor):
        definition = ensemble(
            flow=[{"agent": "echo", "input": {"mode": "${state.mode}", "region": "${env.REGION}"}}],
            output="${echo.output}",
            state={"initial": {"mode": "fast"}},
        )
        result = run(executor, definition, env={"REGION": "eu"})
        assert result.output == {"mode": "fast", "region": "eu"}

    def test_run_id_is_kept(self, executor):
        result = run(executor, ensemble(flow=[{"agent": "echo"}]), run_id="run-123")
        assert result.run_id == "run-123"
        assert result.ensemble == "test"

    def test_caller_input_is_not_mutated(self, executor):
        caller_input = {"items": ["a"]}
        definition = ensemble(flow=[{"agent": "mutate", "input": {"items": "${input.items}"}}])

        result = run(executor, definition, caller_input)

        assert result.succeeded
        assert caller_input == {"items": ["a"]}

    def test_agent_cannot_mutate_run_input(self, executor):
        definition = ensemble(
            flow=[
                {"agent": "mutate", "id": "m", "input": {"items": "${input.items}"}},
                {"agent": "echo", "id": "later", "input": {"items": "${input.items}"}},
            ],
            output={"later": "${later.output.items}", "m": "${m.output.items}"},
        )

        result = run(executor, definition, {"items": ["a"]})

        assert result.output == {"later": ["a"], "m": ["a", "added"]}

    def test_agent_cannot_mutate_earlier_output(self, executor):
        definition = ensemble(
            flow=[
                {"agent": "echo", "id": "src", "input": {"items": "${input.items}"}},
                {"agent": "mutate", "id": "m", "input": {"items": "${src.output.items}"}},
            ],
            output="${src.output.items}",
        )

        result = run(executor, definition, {"items": ["a"]})

        assert result.output == ["a"]
        assert result.step("src").output == {"items": ["a"]}

    def test_retry_resends_unmutated_input(self, executor, calls):
        definition = ensemble(
            flow=[{
                "agent": "mutate-then-fail",
                "id": "m",
                "input": {"items": "${input.items}"},
                "retry": {"attempts": 1},
            }],
            output="${m.output.items}",
        )

        result = run(executor, definition, {"items": ["a"]})

        assert result.succeeded
        assert calls == [("m", ["a"]), ("m", ["a"])]
        assert result.output == ["a", "added"]

    def test_agent_sees_ensemble_name(self, executor):
        definition = ensemble(flow=[{"agent": "whoami", "id": "me"}], output="${me.output}")

        result = run(executor, definition, run_id="run-9")

        assert result.output == {"ensemble": "test", "run_id": "run-9", "step_id": "me"}

    def test_undefined_output_serializes_as_null(self, executor):
        definition = ensemble(flow=[{"agent": "echo"}], output={"x": "${input.nope}"})
        result = run(executor, definition)
        assert result.to_dict()["output"] == {"x": None}

    def test_failure_result_shape(self, executor):
        definition = ensemble(flow=[{"agent": "fail", "id": "bad", "input": {"message": "nope"}}])

        result = run(executor, definition)

        assert result.status == RunStatus.FAILED
        assert result.output is None
        assert result.error == {"step_id": "bad", "kind": "AgentExecutionError", "message": "nope"}
        assert result.step("bad").status == StepStatus.FAILED

    def test_steps_after_failure_do_not_run(self, executor, calls):
        definition = ensemble(flow=[
            {"agent": "fail", "id": "bad"},
            {"agent": "echo", "id": "never"},
        ])
        run(executor, definition)
        assert step_ids(calls) == ["bad"]


# ============================================================================
# SEQUENCE
# ============================================================================

class TestSequence:
    """Test ordered execution."""

    def test_invocation_order_follows_step_order(self, executor, calls):
        flow = [{"agent": "echo", "id": name} for name in ("a", "b", "c")]

        run(executor, ensemble(flow=flow))
        assert step_ids(calls) == ["a", "b", "c"]

        calls.clear()
        run(executor, ensemble(flow=list(reversed(flow))))
        assert step_ids(calls) == ["c", "b", "a"]

    def test_nested_sequence_output(self, executor):
        definition = ensemble(
            flow=[{
                "type": "sequence",
                "id": "seq",
                "steps": [
                    {"agent": "echo", "id": "one", "input": {"v": 1}},
                    {"agent": "echo", "id": "two", "input": {"v": 2}},
                ],
            }],
            output="${seq.output}",
        )
        assert run(executor, definition).output == [{"v": 1}, {"v": 2}]

    def test_top_level_control_step_without_id(self, executor):
        definition = ensemble(flow=[{"type": "sequence", "steps": [{"agent": "echo"}]}])
        result = run(executor, definition)
        assert result.step("sequence_0").status == StepStatus.SUCCEEDED


# ============================================================================
# PARALLEL
# ============================================================================

class TestParallel:
    """Test concurrent branches."""

    def test_outputs_in_declaration_order(self, executor):
        definition = ensemble(
            flow=[{
                "type": "parallel",
                "id": "fan",
                "steps": [
                    {"agent": "slow", "id": "late", "input": {"ms": 30}},
                    {"agent": "echo", "id": "early", "input": {"v": 1}},
                ],
            }],
            output="${fan.output}",
        )
        result = run(executor, definition)
        assert result.output == [{"slept": 30}, {"v": 1}]

    def test_partial_failure_keeps_successful_results(self, executor):
        definition = ensemble(flow=[{
            "type": "parallel",
            "id": "fan",
            "steps": [
                {"agent": "slow", "id": "ok", "input": {"ms": 30}},
                {"agent": "fail", "id": "bad"},
            ],
        }])

        result = run(executor, definition)

        assert result.status == RunStatus.FAILED
        assert result.error["kind"] == "ParallelExecutionError"
        assert result.error["step_id"] == "fan"
        assert result.step("ok").status == StepStatus.SUCCEEDED
        assert result.step("ok").output == {"slept": 30}
        assert result.step("bad").status == StepStatus.FAILED

    def test_branch_results_visible_after_parallel(self, executor):
        definition = ensemble(
            flow=[
                {
                    "type": "parallel",
                    "steps": [
                        {"agent": "echo", "id": "left", "input": {"v": "L"}},
                        {"agent": "echo", "id": "right", "input": {"v": "R"}},
                    ],
                },
                {"agent": "echo", "id": "join", "input": {"both": "${left.output.v}${right.output.v}"}},
            ],
            output="${join.output.both}",
        )
        assert run(executor, definition).output == "LR"

    def test_wait_for_any_takes_first_success(self, executor):
        definition = ensemble(
            flow=[{
                "type": "parallel",
                "id": "race",
                "waitFor": "any",
                "steps": [
                    {"agent": "slow", "id": "tortoise", "input": {"ms": 5000}},
                    {"agent": "fail", "id": "broken"},
                    {"agent": "slow", "id": "hare", "input": {"ms": 10}},
                ],
            }],
            output="${race.output}",
        )

        result = run(executor, definition)

        assert result.succeeded
        assert result.output == {"slept": 10}
        assert result.step("tortoise") is None

    def test_wait_for_any_fails_when_all_fail(self, executor):
        definition = ensemble(flow=[{
            "type": "parallel",
            "id": "race",
            "waitFor": "any",
            "steps": [{"agent": "fail", "id": "a"}, {"agent": "fail", "id": "b"}],
        }])
        result = run(executor, definition)
        assert result.error["kind"] == "ParallelExecutionError"


# ============================================================================
# BRANCH / SWITCH
# ============================================================================

class TestBranching:
    """Test branch and switch."""

    @pytest.fixture
    def branch(self):
        return ensemble(flow=[{
            "type": "branch",
            "id": "check",
            "condition": "input.premium",
            "then": [{"agent": "echo", "id": "vip"}],
            "else": [{"agent": "echo", "id": "regular"}],
        }])

    def test_then(self, executor, branch, calls):
        run(executor, branch, {"premium": True})
        assert step_ids(calls) == ["vip"]

    def test_else(self, executor, branch, calls):
        run(executor, branch, {"premium": 0})
        assert step_ids(calls) == ["regular"]

    def test_no_else_is_skipped(self, executor, calls):
        definition = ensemble(flow=[{
            "type": "branch",
            "id": "check",
            "condition": "{{ input.premium }}",
            "then": [{"agent": "echo", "id": "vip"}],
        }])

        result = run(executor, definition, {})

        assert calls == []
        assert result.succeeded
        assert result.step("check").status == StepStatus.SKIPPED

    @pytest.fixture
    def switch(self):
        return ensemble(flow=[{
            "type": "switch",
            "id": "route",
            "value": "input.kind",
            "cases": {
                "a": [{"agent": "echo", "id": "case-a"}],
                "b": [{"agent": "echo", "id": "case-b"}],
                1: [{"agent": "echo", "id": "case-one"}],
            },
            "default": [{"agent": "echo", "id": "fallback"}],
        }])

    @pytest.mark.parametrize("kind,expected", [
        ("a", "case-a"),
        ("b", "case-b"),
        (1, "case-one"),
        (1.0, "case-one"),
        ("zzz", "fallback"),
        (None, "fallback"),
    ])
    def test_switch(self, executor, switch, calls, kind, expected):
        run(executor, switch, {"kind": kind})
        assert step_ids(calls) == [expected]

    def test_switch_without_match_or_default_is_noop(self, executor, calls):
        definition = ensemble(flow=[{
            "type": "switch",
            "id": "route",
            "value": "input.kind",
            "cases": {"a": [{"agent": "echo"}]},
        }])

        result = run(executor, definition, {"kind": "b"})

        assert result.succeeded
        assert calls == []
        assert result.step("route").status == StepStatus.SKIPPED


# ============================================================================
# TRY / CATCH / FINALLY
# ============================================================================

class TestTry:
    """Test error recovery."""

    def test_catch_sees_error_and_recovers(self, executor, calls):
        definition = ensemble(
            flow=[{
                "type": "try",
                "id": "guard",
                "steps": [{"agent": "fail", "id": "boom", "input": {"message": "kaput"}}],
                "catch": [{
                    "agent": "echo",
                    "id": "handler",
                    "input": {
                        "kind": "${error.kind}",
                        "step": "${error.step_id}",
                        "message": "${error.message}",
                    },
                }],
                "finally": [{"agent": "echo", "id": "cleanup"}],
            }],
            output="${handler.output}",
        )

        result = run(executor, definition)

        assert result.succeeded
        assert result.output == {"kind": "AgentExecutionError", "step": "boom", "message": "kaput"}
        assert step_ids(calls) == ["boom", "handler", "cleanup"]
        assert result.step("guard").status == StepStatus.SUCCEEDED

    def test_catch_sees_expression_error(self, executor):
        definition = ensemble(
            flow=[{
                "type": "try",
                "steps": [{"agent": "echo", "id": "bad", "input": {"n": "${input.n[1²]}"}}],
                "catch": [{"agent": "echo", "id": "handler", "input": {"kind": "${error.kind}", "step": "${error.step_id}"}}],
            }],
            output="${handler.output}",
        )

        result = run(executor, definition, {"n": 1})

        assert result.succeeded
        assert result.output == {"kind": "ExpressionError", "step": "bad"}

    def test_unhashable_key_is_undefined_not_error(self, executor, calls):
        definition = ensemble(
            flow=[{
                "type": "try",
                "steps": [{"agent": "echo", "id": "lookup", "input": {"v": "${input.m[input.l]}"}}],
                "catch": [{"agent": "echo", "id": "handler"}],
            }],
            output='${lookup.output.v ?? "missing"}',
        )

        result = run(executor, definition, {"m": {"a": 1}, "l": ["a"]})

        assert result.succeeded
        assert result.output == "missing"
        assert step_ids(calls) == ["lookup"]

    def test_finally_runs_when_uncaught(self, executor, calls):
        definition = ensemble(flow=[{
            "type": "try",
            "id": "guard",
            "steps": [{"agent": "fail", "id": "boom"}],
            "finally": [{"agent": "echo", "id": "cleanup"}],
        }])

        result = run(executor, definition)

        assert result.status == RunStatus.FAILED
        assert result.error["step_id"] == "boom"
        assert step_ids(calls) == ["boom", "cleanup"]

    def test_failing_catch_propagates(self, executor):
        definition = ensemble(flow=[{
            "type": "try",
            "steps": [{"agent": "fail", "id": "boom"}],
            "catch": [{"agent": "fail", "id": "catcher", "input": {"message": "still broken"}}],
        }])

        result = run(executor, definition)

        assert result.error["step_id"] == "catcher"
        assert result.error["message"] == "still broken"

    def test_finally_failure_overrides_success(self, executor):
        definition = ensemble(flow=[{
            "type": "try",
            "id": "guard",
            "steps": [{"agent": "echo", "id": "fine"}],
            "finally": [{"agent": "fail", "id": "fin"}],
        }])

        result = run(executor, definition)

        assert result.status == RunStatus.FAILED
        assert result.error["step_id"] == "fin"
        assert result.step("fine").status == StepStatus.SUCCEEDED

    def test_try_catches_parallel_failure(self, executor):
        definition = ensemble(
            flow=[{
                "type": "try",
                "steps": [{
                    "type": "parallel",
                    "id": "fan",
                    "steps": [{"agent": "echo", "id": "ok"}, {"agent": "fail", "id": "bad"}],
                }],
                "catch": [{"agent": "echo", "id": "handler", "input": {"kind": "${error.kind}"}}],
            }],
            output="${handler.output.kind}",
        )
        assert run(executor, definition).output == "ParallelExecutionError"


# ============================================================================
# FOREACH
# ============================================================================

class TestForeach:
    """Test per-item iteration."""

    def test_sequential_items(self, executor, calls):
        definition = ensemble(
            flow=[{
                "type": "foreach",
                "id": "each",
                "items": "${input.items}",
                "step": {"agent": "echo", "input": {"value": "${item}", "position": "${index}"}},
            }],
            output="${each.output}",
        )

        result = run(executor, definition, {"items": ["a", "b", "c"]})

        assert result.output == [
            {"value": "a", "position": 0},
            {"value": "b", "position": 1},
            {"value": "c", "position": 2},
        ]
        assert [input["value"] for _, input in calls] == ["a", "b", "c"]

    def test_batched_items_keep_order(self, executor):
        definition = ensemble(
            flow=[{
                "type": "foreach",
                "id": "each",
                "items": "input.items",
                "maxConcurrency": 2,
                "step": {"agent": "slow", "input": {"ms": "${item}"}},
            }],
            output="${each.output}",
        )

        result = run(executor, definition, {"items": [30, 10, 20]})

        assert result.output == [{"slept": 30}, {"slept": 10}, {"slept": 20}]

    def test_break_when(self, executor, calls):
        definition = ensemble(
            flow=[{
                "type": "foreach",
                "id": "each",
                "items": "input.items",
                "breakWhen": "item.stop",
                "step": {"agent": "echo", "input": {"n": "${item.n}"}},
            }],
            output="${each.output}",
        )

        result = run(executor, definition, {"items": [{"n": 1}, {"n": 2, "stop": True}, {"n": 3}]})

        assert result.output == [{"n": 1}, {"n": 2}]
        assert len(calls) == 2

    def test_missing_items_is_empty(self, executor, calls):
        definition = ensemble(
            flow=[{"type": "foreach", "id": "each", "items": "input.nope", "step": {"agent": "echo"}}],
            output="${each.output}",
        )
        assert run(executor, definition).output == []
        assert calls == []

    def test_non_list_items_fail(self, executor):
        definition = ensemble(flow=[
            {"type": "foreach", "id": "each", "items": "input.name", "step": {"agent": "echo"}},
        ])

        result = run(executor, definition, {"name": "Ada"})

        assert result.error["kind"] == "ExpressionError"
        assert result.error["step_id"] == "each"

    def test_item_failure_stops_iteration(self, executor, calls):
        definition = ensemble(flow=[{
            "type": "foreach",
            "id": "each",
            "items": "input.items",
            "step": {"agent": "arith", "input": {"a": "${item}", "op": "${input.op}", "b": 1}},
        }])

        result = run(executor, definition, {"items": [1, 2], "op": "modulo"})

        assert result.status == RunStatus.FAILED
        assert result.error["kind"] == "AgentExecutionError"
        assert len(calls) == 1


# ============================================================================
# WHILE
# ============================================================================

class TestWhile:
    """Test bounded loops."""

    def test_runs_until_condition_is_falsy(self, executor, calls):
        definition = ensemble(
            flow=[{
                "type": "while",
                "id": "loop",
                "condition": "!lastIterationResults[0].done",
                "maxIterations": 10,
                "steps": [{"agent": "counter", "id": "tick", "input": {"until": 2}}],
            }],
            output="${loop.output}",
        )

        result = run(executor, definition)

        assert result.succeeded
        assert len(calls) == 2
        assert result.output == [{"count": 2, "done": True}]

    def test_iteration_local(self, executor, calls):
        definition = ensemble(flow=[{
            "type": "while",
            "condition": "!lastIterationResults[0].done",
            "maxIterations": 5,
            "steps": [{"agent": "counter", "input": {"until": 3, "iteration": "${iteration}"}}],
        }])

        run(executor, definition)

        assert [input["iteration"] for _, input in calls] == [0, 1, 2]

    def test_never_falsy_halts_at_bound(self, executor, calls):
        definition = ensemble(flow=[{
            "type": "while",
            "id": "loop",
            "condition": True,
            "maxIterations": 3,
            "steps": [{"agent": "counter", "id": "tick", "input": {"until": 100}}],
        }])

        result = run(executor, definition)

        assert result.status == RunStatus.FAILED
        assert result.error["kind"] == "LoopBoundExceededError"
        assert result.error["step_id"] == "loop"
        assert len(calls) == 3

    def test_initially_falsy_never_runs(self, executor, calls):
        definition = ensemble(
            flow=[{
                "type": "while",
                "id": "loop",
                "condition": "input.go",
                "maxIterations": 3,
                "steps": [{"agent": "counter"}],
            }],
            output="${loop.output}",
        )
        assert run(executor, definition, {"go": False}).output == []
        assert calls == []


# ============================================================================
# MAP-REDUCE
# ============================================================================

class TestMapReduce:
    """Test fan-out with a reduce phase."""

    def test_map_then_reduce(self, executor):
        definition = ensemble(
            flow=[{
                "type": "map-reduce",
                "id": "mr",
                "items": "input.nums",
                "map": {"agent": "arith", "id": "m", "input": {"a": "${item}", "op": "multiply", "b": 2}},
                "reduce": {
                    "agent": "echo",
                    "id": "r",
                    "input": {"values": "${mapResults}", "total": "${results | sum}"},
                },
            }],
            output="${mr.output}",
        )

        result = run(executor, definition, {"nums": [1, 2, 3]})

        assert result.succeeded
        assert result.output == {"values": [2, 4, 6], "total": 12}

    def test_map_failure_fails_aggregate(self, executor, calls):
        definition = ensemble(flow=[{
            "type": "map-reduce",
            "id": "mr",
            "items": "input.nums",
            "map": {"agent": "fail", "id": "m"},
            "reduce": {"agent": "echo", "id": "r"},
        }])

        result = run(executor, definition, {"nums": [1, 2]})

        assert result.error["kind"] == "ParallelExecutionError"
        assert result.error["step_id"] == "mr"
        assert "r" not in step_ids(calls)
        assert len(calls) == 2


# ============================================================================
# SHARED STATE
# ============================================================================

class TestSharedState:
    """Test state.use views and state.set updates."""

    def test_agent_sees_only_used_keys(self, executor, calls):
        definition = ensemble(
            flow=[{"agent": "stateful", "id": "s", "state": {"use": ["a"]}}],
            state={"initial": {"a": 1, "b": 2}},
        )

        run(executor, definition)

        assert calls == [("s", {"a": 1})]

    def test_updates_visible_to_later_steps(self, executor, calls):
        definition = ensemble(
            flow=[
                {"agent": "stateful", "id": "writer", "input": {"set": {"total": 5}}, "state": {"set": ["total"]}},
                {"agent": "echo", "id": "reader", "input": {"total": "${state.total}"}},
                {"agent": "stateful", "id": "user", "state": {"use": ["total"]}},
            ],
            output={"echoed": "${reader.output.total}", "seen": "${user.output.seen}"},
            state={"initial": {"total": 0}},
        )

        result = run(executor, definition)

        assert result.output == {"echoed": 5, "seen": {"total": 5}}
        assert calls[0] == ("writer", {})

    def test_undeclared_keys_are_ignored(self, executor):
        definition = ensemble(
            flow=[{
                "agent": "stateful",
                "input": {"set": {"total": 5, "secret": 1}},
                "state": {"set": ["total"]},
            }],
            output={"total": "${state.total}", "secret": '${state.secret ?? "unset"}'},
        )

        result = run(executor, definition)

        assert result.output == {"total": 5, "secret": "unset"}

    def test_failed_step_applies_no_updates(self, executor):
        definition = ensemble(
            flow=[{
                "type": "try",
                "steps": [{
                    "agent": "stateful",
                    "id": "writer",
                    "input": {"set": {"total": 5}, "fail": True},
                    "state": {"set": ["total"]},
                }],
                "catch": [{"agent": "echo", "id": "handler", "input": {"total": '${state.total ?? "unset"}'}}],
            }],
            output="${handler.output.total}",
        )

        result = run(executor, definition)

        assert result.succeeded
        assert result.output == "unset"

    def test_updates_from_parallel_branches_are_shared(self, executor):
        definition = ensemble(
            flow=[
                {
                    "type": "parallel",
                    "steps": [
                        {"agent": "stateful", "id": "left", "input": {"set": {"l": 1}}, "state": {"set": ["l"]}},
                        {"agent": "stateful", "id": "right", "input": {"set": {"r": 2}}, "state": {"set": ["r"]}},
                    ],
                },
                {"agent": "echo", "id": "after", "input": {"l": "${state.l}", "r": "${state.r}"}},
            ],
            output="${after.output}",
        )

        result = run(executor, definition)

        assert result.output == {"l": 1, "r": 2}

    def test_initial_state_is_not_shared_between_runs(self, executor):
        definition = ensemble(
            flow=[{"agent": "stateful", "input": {"set": {"total": 5}}, "state": {"set": ["total"]}}],
            output="${state.total}",
            state={"initial": {"total": 0}},
        )

        run(executor, definition)

        assert definition.state.initial == {"total": 0}


# ============================================================================
# GUARDS, DEADLINES, VALIDATION
# ============================================================================

class TestRunBoundary:
    """Test guards, control-step deadlines and validation."""

    def test_unknown_agent_fails_before_any_step(self, executor, calls):
        definition = ensemble(flow=[
            {"agent": "echo", "id": "first"},
            {"agent": "ghost", "id": "second"},
        ])

        result = run(executor, definition)

        assert result.status == RunStatus.FAILED
        assert result.error["kind"] == "ValidationError"
        assert "ghost" in result.error["message"]
        assert result.steps == []
        assert calls == []

    def test_guard_skips_control_step(self, executor, calls):
        definition = ensemble(flow=[{
            "type": "sequence",
            "id": "maybe",
            "when": "input.enabled",
            "steps": [{"agent": "echo"}],
        }])

        result = run(executor, definition, {"enabled": False})

        assert calls == []
        assert result.step("maybe").status == StepStatus.SKIPPED

    def test_control_step_deadline_with_fallback(self, executor):
        definition = ensemble(
            flow=[{
                "type": "sequence",
                "id": "seq",
                "timeout": 20,
                "onTimeout": {"fallback": "late"},
                "steps": [{"agent": "slow", "input": {"ms": 2000}}],
            }],
            output="${seq.output}",
        )

        result = run(executor, definition)

        assert result.succeeded
        assert result.output == "late"
        assert result.step("seq").status == StepStatus.TIMED_OUT

    def test_control_step_deadline_without_fallback(self, executor):
        definition = ensemble(flow=[{
            "type": "sequence",
            "id": "seq",
            "timeout": 20,
            "steps": [{"agent": "slow", "input": {"ms": 2000}}],
        }])

        result = run(executor, definition)

        assert result.error["kind"] == "TimeoutError"
        assert result.error["step_id"] == "seq"

    def test_output_expression_error(self, executor):
        definition = ensemble(flow=[{"agent": "echo"}], output="${input.}")

        result = run(executor, definition)

        assert result.error["kind"] == "ExpressionError"
        assert result.error["step_id"] == "output"
