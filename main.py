"""
EvoSim – Main Entry Point
=========================

Usage examples:
  python main.py                                  # one 5-minute headless run
  python main.py --minutes 1 --speed 20           # shorter, faster run
  python main.py --engine legacy --seed 7         # legacy backend, fixed seed
  python main.py --agents 200 --resources 400     # custom starting world
  python main.py --workers 4                      # parallel compute phase
  python main.py --mode sweep --minutes 0.5       # grid sweep over counts
  python main.py --mode optimize --iterations 3   # random local search
  python main.py -v                               # log engine/runner detail
"""

import argparse
import logging
import os

from config import (SAVE_DIR, SimulationConfig, ConfigError,
                    INITIAL_AGENTS, INITIAL_RESOURCES, MAX_AGENTS, MAX_RESOURCES,
                    TARGET_MINUTES,
                    SPEED_MULTIPLIER, RESOURCE_SPAWN_RATE, EARLY_ACCEPT_SCORE)
from harness import SweepHarness, grid
from headless import HeadlessRunner
from visualizer import (ensure_dirs, save_world_snapshot, save_population_chart,
                        save_sweep_chart, save_diagnostics_json, append_csv)


# ──────────────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="EvoSim – predator/prey evolution simulator")
    p.add_argument("--mode",       default="run", choices=["run", "sweep", "optimize"],
                   help="Single headless run, grid sweep, or local search")
    p.add_argument("--engine",     default="data-oriented", choices=["data-oriented", "legacy"],
                   help="Engine backend")
    p.add_argument("--agents",     type=int,   default=INITIAL_AGENTS,
                   help="Initial agent count")
    p.add_argument("--resources",  type=int,   default=INITIAL_RESOURCES,
                   help="Initial resource count")
    p.add_argument("--spawn_rate", type=float, default=RESOURCE_SPAWN_RATE,
                   help="Resources spawned per virtual second")
    p.add_argument("--minutes",    type=float, default=TARGET_MINUTES,
                   help="Target virtual duration in minutes")
    p.add_argument("--speed",      type=float, default=SPEED_MULTIPLIER,
                   help="Virtual-time speed multiplier")
    p.add_argument("--workers",    type=int,   default=1,
                   help="Worker threads for the per-tick compute phase")
    p.add_argument("--seed",       type=int,   default=None,
                   help="Random seed for reproducibility")
    p.add_argument("--iterations", type=int,   default=5,
                   help="Optimisation rounds (--mode optimize)")
    p.add_argument("--variations", type=int,   default=4,
                   help="Candidates per optimisation round")
    p.add_argument("--early_accept", type=float, default=EARLY_ACCEPT_SCORE,
                   help="Stop a sweep once a candidate beats this score")
    p.add_argument("--outdir",     default=SAVE_DIR,
                   help="Output directory")
    p.add_argument("-v", "--verbose", action="store_true",
                   help="Show engine and runner log messages")
    return p.parse_args(argv)


def build_config(args) -> SimulationConfig:
    return SimulationConfig(
        initial_agents           = args.agents,
        initial_resources        = args.resources,
        max_agents               = max(MAX_AGENTS, args.agents),
        max_resources            = max(MAX_RESOURCES, args.resources),
        resource_spawn_rate      = args.spawn_rate,
        target_duration_minutes  = args.minutes,
        speed_multiplier         = args.speed,
        use_data_oriented_engine = args.engine == "data-oriented",
        workers                  = args.workers,
        seed                     = args.seed,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Reports
# ──────────────────────────────────────────────────────────────────────────────

def print_summary(diag):
    s = diag.final_stats
    print("\n=== Headless Simulation Summary ===")
    print(f"  Engine          : {diag.engine}  (seed {diag.seed})")
    print(f"  Termination     : {diag.termination}")
    print(f"  Wall duration   : {diag.duration_seconds:.2f}s")
    print(f"  Virtual time    : {diag.virtual_seconds:.1f}s")
    print(f"  Total steps     : {diag.total_steps}")
    print(f"  Steps per second: {diag.steps_per_second:.1f}")
    print("\n=== Final Population ===")
    print(f"  Agents          : {s.agent_count}  ({s.predator_count} predators)")
    print(f"  Resources       : {s.resource_count}")
    print(f"  Total energy    : {s.total_energy:.1f}")
    print(f"  Max generation  : {s.max_generation}")
    print(f"  Births / deaths : {diag.total_births} / {diag.total_deaths}")
    for reason, n in diag.deaths_by_reason.items():
        if n:
            print(f"    {reason:<20}: {n}")
    print("\n=== Simulation Quality ===")
    print(f"  Stability score : {diag.stability_score:.3f}")
    print(f"  Is stable       : {diag.is_stable}")
    print(f"  Is dynamic      : {diag.is_dynamic}")
    print(f"  Quality score   : {diag.quality_score:.3f}")
    print(f"  Genetic diversity: {diag.genetic_diversity:.3f}")


def print_harness_summary(harness):
    summary = harness.summary()
    print(f"\n=== {summary['name']} ===")
    print(f"  Runs            : {summary['total_runs']}")
    print(f"  Passed          : {summary['successful_runs']} "
          f"({summary['success_rate'] * 100:.1f}%)")
    print(f"  Best score      : {summary['best_score']:.3f}")
    print(f"  Average score   : {summary['average_score']:.3f}")
    print(f"  Average duration: {summary['average_duration']:.2f}s")
    best = harness.best
    if best is not None:
        print(f"  Best config     : {best.config.initial_agents} agents, "
              f"{best.config.initial_resources} resources, "
              f"spawn {best.config.resource_spawn_rate:.3f}/s")
        print(f"  Notes           : {best.notes}")


# ──────────────────────────────────────────────────────────────────────────────
# Modes
# ──────────────────────────────────────────────────────────────────────────────

def run_once(config: SimulationConfig, outdir: str):
    runner = HeadlessRunner(config)
    diag = runner.run()
    print_summary(diag)
    print("\nSaving outputs …")
    print(f"  → {save_diagnostics_json(diag, outdir)}")
    chart = save_population_chart(diag, outdir)
    if chart:
        print(f"  → {chart}")
    print(f"  → {save_world_snapshot(runner.simulation, 'final', outdir)}")
    return diag


def run_search(args, config: SimulationConfig, outdir: str):
    harness = SweepHarness(name=f"EvoSim {args.mode}", seed=args.seed,
                           on_result=lambda r: append_csv(r.as_row(), outdir))
    if args.mode == "sweep":
        candidates = grid(config)
        print(f"  Sweeping {len(candidates)} candidates …")
        harness.run(candidates, early_accept=args.early_accept)
    else:
        best = harness.optimize(config, iterations=args.iterations, variations=args.variations)
        print(f"\n  Optimised: {best.initial_agents} agents, {best.initial_resources} resources, "
              f"spawn {best.resource_spawn_rate:.3f}/s, threshold {best.stability_threshold:.3f}")
    print_harness_summary(harness)
    chart = save_sweep_chart(harness.results, outdir)
    if chart:
        print(f"  → {chart}")
    return harness


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────

def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    try:
        config = build_config(args)
    except ConfigError as e:
        raise SystemExit(f"error: {e}")
    outdir = os.path.join(args.outdir, args.mode)
    ensure_dirs(outdir)

    print("=" * 60)
    print("  EvoSim – Predator/Prey Evolution Simulator")
    print("=" * 60)
    print(f"  Mode       : {args.mode}")
    print(f"  Engine     : {config.engine_name}")
    print(f"  Agents     : {config.initial_agents}  (max {config.max_agents})")
    print(f"  Resources  : {config.initial_resources}  (max {config.max_resources})")
    print(f"  Duration   : {config.target_duration_minutes} min at {config.speed_multiplier}x")
    print(f"  Workers    : {config.workers}")
    print(f"  Seed       : {config.seed}")
    print(f"  Output dir : {outdir}")
    print("=" * 60)

    if args.mode == "run":
        run_once(config, outdir)
    else:
        run_search(args, config, outdir)
    print("\nDone! All outputs saved to:", outdir)


if __name__ == "__main__":
    main()
