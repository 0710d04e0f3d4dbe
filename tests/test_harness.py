"""
Tests for the parameter search harness.
"""

import pytest

from config import SimulationConfig
from engine import Stats
from harness import SweepHarness, describe, evaluate, grid
from headless import Diagnostics


def _tiny(**overrides) -> SimulationConfig:
    defaults = dict(
        width=300.0, height=300.0,
        initial_agents=10, initial_resources=20,
        max_agents=200, max_resources=200,
        target_duration_minutes=0.02,
        speed_multiplier=10.0,
        seed=8,
    )
    defaults.update(overrides)
    return SimulationConfig(**defaults)


def _diag(final_agents, virtual_seconds, **kw) -> Diagnostics:
    return Diagnostics(final_stats=Stats(agent_count=final_agents),
                       virtual_seconds=virtual_seconds, **kw)


# ---------------------------------------------------------------------------
# Pass/fail and notes
# ---------------------------------------------------------------------------

class TestEvaluate:
    cfg = SimulationConfig(initial_agents=100, target_duration_minutes=5.0)

    def test_healthy_run_passes(self):
        assert evaluate(_diag(100, 300.0), self.cfg)

    def test_extinction_fails(self):
        assert not evaluate(_diag(0, 300.0, extinction_occurred=True), self.cfg)

    def test_explosion_fails(self):
        assert not evaluate(_diag(150, 300.0, population_explosion=True), self.cfg)

    @pytest.mark.parametrize("final", [20, 400])
    def test_ratio_outside_band_fails(self, final):
        assert not evaluate(_diag(final, 300.0), self.cfg)

    def test_short_run_fails(self):
        assert not evaluate(_diag(100, 120.0), self.cfg)


class TestDescribe:
    cfg = SimulationConfig(initial_agents=100)

    def test_balanced(self):
        assert describe(_diag(100, 300.0), self.cfg) == "Balanced simulation"

    def test_extinction_notes(self):
        notes = describe(_diag(0, 10.0, extinction_occurred=True), self.cfg)
        assert notes == "Extinction occurred, Population declined significantly"

    def test_growth_and_progress(self):
        notes = describe(_diag(250, 300.0, is_dynamic=True, average_generation=3.0), self.cfg)
        assert "Dynamic population" in notes
        assert "Population grew significantly" in notes
        assert "Good evolutionary progress" in notes


# ---------------------------------------------------------------------------
# Candidate generation
# ---------------------------------------------------------------------------

class TestGrid:
    def test_default_grid_is_eight_by_eight(self):
        assert len(grid(SimulationConfig())) == 64

    def test_product_and_caps(self):
        base = _tiny(max_agents=10, max_resources=20)
        configs = grid(base, agent_counts=[5, 40], resource_counts=[10, 60])
        assert [(c.initial_agents, c.initial_resources) for c in configs] == \
            [(5, 10), (5, 60), (40, 10), (40, 60)]
        assert all(c.max_agents >= c.initial_agents for c in configs)
        assert all(c.max_resources >= c.initial_resources for c in configs)
        assert all(c.width == 300.0 for c in configs)

    def test_variations_respect_floors(self):
        harness = SweepHarness(seed=1)
        for cfg in harness.variations(_tiny(), 10):
            assert cfg.initial_agents >= 50
            assert cfg.initial_resources >= 100
            assert cfg.max_agents >= cfg.initial_agents
            assert 0.5 * 0.2 <= cfg.resource_spawn_rate <= 1.5 * 0.2


# ---------------------------------------------------------------------------
# Running candidates
# ---------------------------------------------------------------------------

class TestSweepHarness:
    def test_early_accept_stops_after_first(self):
        harness = SweepHarness(seed=0)
        candidates = grid(_tiny(), agent_counts=[10, 20], resource_counts=[20, 40])
        batch = harness.run(candidates, early_accept=-1.0)
        assert len(batch) == 1
        assert len(harness.results) == 1

    def test_results_ranked_best_first(self):
        harness = SweepHarness(seed=0)
        candidates = grid(_tiny(), agent_counts=[0, 10], resource_counts=[20])
        batch = harness.run(candidates)
        scores = [r.score for r in batch]
        assert scores == sorted(scores, reverse=True)
        assert harness.best.score == scores[0]

    def test_callback_and_summary(self):
        seen = []
        harness = SweepHarness(name="unit", seed=0, on_result=seen.append)
        harness.run([_tiny(), _tiny(initial_agents=0)])
        assert len(seen) == 2
        summary = harness.summary()
        assert summary["name"] == "unit"
        assert summary["total_runs"] == 2
        assert 0.0 <= summary["success_rate"] <= 1.0
        assert summary["best_score"] >= summary["average_score"]
        assert summary["successful_runs"] <= 1

    def test_extinct_candidate_fails_with_notes(self):
        result = SweepHarness().run_single(_tiny(initial_agents=0))
        assert not result.passed
        assert "Extinction occurred" in result.notes
        row = result.as_row()
        assert row["termination"] == "extinction"
        assert row["final_agents"] == 0

    def test_empty_summary(self):
        summary = SweepHarness().summary()
        assert summary["total_runs"] == 0
        assert summary["best_score"] == 0.0

    def test_optimize_returns_an_evaluated_config(self):
        harness = SweepHarness(seed=3)
        best = harness.optimize(_tiny(width=200.0, height=200.0), iterations=2, variations=2)
        assert len(harness.results) == 4
        assert best in [r.config for r in harness.results]
        assert harness.best.config == best
