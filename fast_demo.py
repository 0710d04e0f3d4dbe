"""
Fast verification demo – the small reference scenario on both backends.
10 agents, 20 resources, 0.1 virtual minutes at 5x; runs in a few seconds
and saves diagnostics, a chart and a final snapshot per engine.
"""
import os

from config import SimulationConfig
from headless import HeadlessRunner
from visualizer import (ensure_dirs, save_world_snapshot,
                        save_population_chart, save_diagnostics_json)

OUT = "output/demo"
ensure_dirs(OUT)

for data_oriented in (True, False):
    config = SimulationConfig(
        initial_agents           = 10,
        initial_resources        = 20,
        target_duration_minutes  = 0.1,
        speed_multiplier         = 5.0,
        use_data_oriented_engine = data_oriented,
        seed                     = 42,
    )
    runner = HeadlessRunner(config)
    diag = runner.run()
    tag = config.engine_name
    print(f"  {tag:<14} steps={diag.total_steps:<4} agents={diag.final_stats.agent_count:<4} "
          f"resources={diag.final_stats.resource_count:<4} quality={diag.quality_score:.3f} "
          f"({diag.steps_per_second:.0f} steps/s)")
    save_diagnostics_json(diag, OUT, f"{tag}.json")
    save_population_chart(diag, OUT, f"{tag}.png")
    save_world_snapshot(runner.simulation, tag, OUT)

print("\nAll outputs in:", OUT)
print("Files:")
for root, dirs, files in os.walk(OUT):
    for f in files:
        path = os.path.join(root, f)
        print(f"  {path}")
