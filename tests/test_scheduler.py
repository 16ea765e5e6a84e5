"""Tests for dependency graph construction and batch planning."""

import pytest

from recipe_engine.errors import DependencyGraphError
from recipe_engine.graph import build_step_graph
from recipe_engine.graph import find_cycle
from recipe_engine.models import Step
from recipe_engine.scheduler import compute_batches
from recipe_engine.scheduler import plan_execution


def make_step(name: str, *depends_on: str, exports: dict | None = None) -> Step:
    return Step(name=name, tool="shell", config={"command": "true"}, depends_on=list(depends_on), exports=exports or {})


class TestBuildStepGraph:
    """Tests for graph validation."""

    def test_edges_both_directions(self):
        graph = build_step_graph([make_step("a"), make_step("b", "a"), make_step("c", "a", "b")])

        assert graph.dependencies["c"] == ["a", "b"]
        assert graph.dependents["a"] == {"b", "c"}
        assert graph.roots() == ["a"]
        assert "b" in graph
        assert len(graph) == 3

    def test_duplicate_dependency_collapses(self):
        graph = build_step_graph([make_step("a"), make_step("b", "a", "a")])
        assert graph.dependencies["b"] == ["a"]

    def test_duplicate_names(self):
        with pytest.raises(DependencyGraphError) as exc_info:
            build_step_graph([make_step("a"), make_step("a")])
        assert exc_info.value.code == "DUPLICATE_STEP"

    def test_self_dependency(self):
        with pytest.raises(DependencyGraphError) as exc_info:
            build_step_graph([make_step("a", "a")])
        assert exc_info.value.code == "SELF_DEPENDENCY"

    def test_missing_dependencies_are_collected(self):
        with pytest.raises(DependencyGraphError) as exc_info:
            build_step_graph([make_step("a", "ghost"), make_step("b", "phantom")])

        error = exc_info.value
        assert error.code == "MISSING_DEPENDENCY"
        assert error.steps == ["a", "b"]
        assert "ghost" in error.message and "phantom" in error.message

    def test_satisfied_dependencies_accepted(self):
        graph = build_step_graph([make_step("inner", "outer")], satisfied=["outer"])
        assert graph.dependencies["inner"] == []

    def test_cycle_reports_closed_path(self):
        with pytest.raises(DependencyGraphError) as exc_info:
            build_step_graph([make_step("a", "c"), make_step("b", "a"), make_step("c", "b"), make_step("d")])

        error = exc_info.value
        assert error.code == "DEPENDENCY_CYCLE"
        assert error.cycle[0] == error.cycle[-1]
        assert set(error.cycle) == {"a", "b", "c"}
        assert "d" not in error.steps

    def test_find_cycle_none_for_dag(self):
        graph = build_step_graph([make_step("a"), make_step("b", "a")])
        assert find_cycle(graph) is None


class TestComputeBatches:
    """Tests for topological batching."""

    def test_diamond(self):
        steps = [make_step("a"), make_step("b", "a"), make_step("c", "a"), make_step("d", "b", "c")]
        assert compute_batches(build_step_graph(steps)) == [["a"], ["b", "c"], ["d"]]

    def test_independent_steps_share_a_batch_in_declaration_order(self):
        steps = [make_step("z"), make_step("m"), make_step("a")]
        assert compute_batches(build_step_graph(steps)) == [["z", "m", "a"]]

    def test_every_dependency_in_an_earlier_batch(self):
        steps = [
            make_step("lint", "install"),
            make_step("install", "dirs"),
            make_step("dirs"),
            make_step("test", "install", "config"),
            make_step("config", "dirs"),
            make_step("report", "lint", "test"),
        ]
        plan = plan_execution(steps)

        assert sorted(name for batch in plan.batches for name in batch) == sorted(s.name for s in steps)
        for step in steps:
            for dep in step.depends_on:
                assert plan.batch_index(dep) < plan.batch_index(step.name)


class TestPlanExecution:
    """Tests for the full planning pass."""

    def test_export_conflict_in_same_batch(self):
        steps = [make_step("a", exports={"version": "output"}), make_step("b", exports={"version": "output"})]
        with pytest.raises(DependencyGraphError) as exc_info:
            plan_execution(steps)

        assert exc_info.value.code == "EXPORT_CONFLICT"
        assert exc_info.value.steps == ["a", "b"]

    def test_same_export_in_different_batches_allowed(self):
        steps = [make_step("a", exports={"version": "output"}), make_step("b", "a", exports={"version": "output"})]
        plan = plan_execution(steps)
        assert plan.batches == [["a"], ["b"]]

    def test_nested_outer_dependency_lifted_onto_meta_step(self):
        steps = [
            make_step("a"),
            Step.from_dict({"name": "seq", "tool": "sequence", "steps": [{"name": "inner", "dependsOn": ["a"]}]}),
        ]
        plan = plan_execution(steps)

        assert plan.lifted == {"seq": ["a"]}
        assert plan.batches == [["a"], ["seq"]]

    def test_lifting_crosses_several_levels(self):
        inner = {"name": "inner", "tool": "shell", "dependsOn": ["a"]}
        middle = {"name": "middle", "tool": "parallel", "steps": [inner]}
        steps = [make_step("a"), Step.from_dict({"name": "outer", "tool": "sequence", "steps": [middle]})]

        assert plan_execution(steps).batches == [["a"], ["outer"]]

    def test_lifted_dependency_can_close_a_cycle(self):
        steps = [
            make_step("a", "seq"),
            Step.from_dict({"name": "seq", "tool": "sequence", "steps": [{"name": "inner", "dependsOn": ["a"]}]}),
        ]
        with pytest.raises(DependencyGraphError) as exc_info:
            plan_execution(steps)
        assert exc_info.value.code == "DEPENDENCY_CYCLE"

    def test_nested_step_depending_on_enclosing_step(self):
        nested = {"name": "seq", "tool": "sequence", "steps": [{"name": "inner", "dependsOn": ["seq"]}]}
        steps = [Step.from_dict(nested)]
        with pytest.raises(DependencyGraphError) as exc_info:
            plan_execution(steps)
        assert exc_info.value.code == "SELF_DEPENDENCY"

    def test_plan_lookup_helpers(self):
        steps = [make_step("a"), make_step("b", "a")]
        plan = plan_execution(steps)

        assert plan.step("b") is steps[1]
        assert [s.name for s in plan.batch_steps(1)] == ["b"]
