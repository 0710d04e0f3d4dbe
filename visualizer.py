"""
Visualizer for EvoSim.

Produces:
  1. World snapshots    – agents coloured by hue gene, predators ringed, food in green
  2. Population chart   – agents + resources + total energy over a headless run
  3. Sweep chart        – score of every candidate over the agent/resource grid
  4. Diagnostics JSON   – the full end-of-run report
  5. CSV log            – one row per sweep candidate
"""

import os
import csv
import json
import matplotlib
matplotlib.use("Agg")          # non-interactive backend (no display needed)
import matplotlib.pyplot as plt

from config import SAVE_DIR, LOG_CSV
from genes import genes_to_color


# ──────────────────────────────────────────────────────────────────────────────
# Directory setup
# ──────────────────────────────────────────────────────────────────────────────

def ensure_dirs(base: str = SAVE_DIR):
    for sub in ("snapshots", "charts", "diagnostics"):
        os.makedirs(os.path.join(base, sub), exist_ok=True)


def _dark_axes(fig, ax):
    fig.patch.set_facecolor("#111111")
    ax.set_facecolor("#111111")
    ax.tick_params(colors="white")
    for spine in ax.spines.values():
        spine.set_edgecolor("#444444")


# ──────────────────────────────────────────────────────────────────────────────
# World snapshot
# ──────────────────────────────────────────────────────────────────────────────

def save_world_snapshot(sim, label: str = "final", base: str = SAVE_DIR):
    """
    Render the current world of a Simulation as a scatter plot.
    Predators get a white ring; resources are drawn under the agents.
    """
    cfg = sim.config
    agents = sim.agents()
    resources = sim.resources()

    fig, ax = plt.subplots(figsize=(8, 8 * cfg.height / cfg.width), dpi=100)
    _dark_axes(fig, ax)
    ax.set_xlim(0, cfg.width)
    ax.set_ylim(0, cfg.height)
    ax.set_aspect("equal")
    predators = [a for a in agents if a.predator]
    ax.set_title(f"Tick {sim.tick}  ({len(agents)} agents, {len(predators)} predators, "
                 f"{len(resources)} resources)", color="white", fontsize=10)

    if resources:
        ax.scatter([r.x for r in resources], [r.y for r in resources],
                   s=[2 + r.energy / 10 for r in resources],
                   c=["#2E8B2E" if r.available else "#334433" for r in resources],
                   linewidths=0, zorder=1)
    if agents:
        rgba = [[c / 255 for c in genes_to_color(a.genes)] + [1.0] for a in agents]
        ax.scatter([a.x for a in agents], [a.y for a in agents],
                   c=rgba, s=[6 * a.genes.size for a in agents], linewidths=0, zorder=2)
    if predators:
        ax.scatter([a.x for a in predators], [a.y for a in predators],
                   s=30, facecolors="none", edgecolors="white", linewidths=0.5, zorder=3)

    path = os.path.join(base, "snapshots", f"world_{label}.png")
    plt.savefig(path, dpi=100, bbox_inches="tight", facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# Run charts
# ──────────────────────────────────────────────────────────────────────────────

def save_population_chart(diag, base: str = SAVE_DIR, filename: str = "population.png"):
    """
    Agents (green) and resources (olive) on the left axis, total agent
    energy (purple, dashed) on the right.
    """
    if not diag.population_history:
        return None
    interval = diag.config.get("history_interval", 1)
    steps = [(i + 1) * interval for i in range(len(diag.population_history))]

    fig, ax1 = plt.subplots(figsize=(12, 5), dpi=100)
    _dark_axes(fig, ax1)
    ax1.plot(steps, diag.population_history, color="#44FF44", linewidth=1.2,
             label="Agents", zorder=3)
    if diag.resource_history:
        ax1.plot(steps, diag.resource_history, color="#AAAA33", linewidth=1.0,
                 alpha=0.8, label="Resources", zorder=2)
    ax1.set_ylabel("Count", color="white")
    ax1.set_xlabel("Step", color="white")

    ax2 = ax1.twinx()
    ax2.plot(steps, diag.energy_history, color="#CC44FF", linewidth=1.0,
             linestyle="--", label="Total energy", zorder=2)
    ax2.set_ylabel("Total agent energy", color="white")
    ax2.tick_params(colors="white")

    lines1, labels1 = ax1.get_legend_handles_labels()
    lines2, labels2 = ax2.get_legend_handles_labels()
    ax1.legend(lines1 + lines2, labels1 + labels2,
               facecolor="#222222", labelcolor="white", loc="upper right", fontsize=8)
    ax1.set_title(f"{diag.engine} engine – {diag.termination}, "
                  f"quality {diag.quality_score:.3f}, stability {diag.stability_score:.3f}",
                  color="white", fontsize=12)
    plt.tight_layout()
    path = os.path.join(base, "charts", filename)
    plt.savefig(path, dpi=100, bbox_inches="tight", facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


def save_sweep_chart(results: list, base: str = SAVE_DIR, filename: str = "sweep.png"):
    """Each candidate as a dot at (initial agents, initial resources), coloured by score."""
    if not results:
        return None
    fig, ax = plt.subplots(figsize=(7, 6), dpi=100)
    _dark_axes(fig, ax)
    points = ax.scatter([r.config.initial_agents for r in results],
                        [r.config.initial_resources for r in results],
                        c=[r.score for r in results], cmap="viridis", vmin=0.0, vmax=1.0,
                        s=[80 if r.passed else 30 for r in results], zorder=2)
    bar = fig.colorbar(points, ax=ax)
    bar.set_label("Quality score", color="white")
    bar.ax.tick_params(colors="white")
    ax.set_xlabel("Initial agents", color="white")
    ax.set_ylabel("Initial resources", color="white")
    ax.set_title("Parameter sweep (large dots passed)", color="white", fontsize=12)
    path = os.path.join(base, "charts", filename)
    plt.savefig(path, dpi=100, bbox_inches="tight", facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# Structured output
# ──────────────────────────────────────────────────────────────────────────────

def save_diagnostics_json(diag, base: str = SAVE_DIR, filename: str = "diagnostics.json"):
    path = os.path.join(base, "diagnostics", filename)
    with open(path, "w") as f:
        json.dump(diag.to_dict(), f, indent=2)
    return path


def append_csv(row: dict, base: str = SAVE_DIR, filename: str = "sweep_log.csv"):
    """Append one candidate's summary row to a CSV file."""
    if not LOG_CSV:
        return
    path = os.path.join(base, filename)
    file_exists = os.path.isfile(path)
    with open(path, "a", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(row.keys()))
        if not file_exists:
            writer.writeheader()
        writer.writerow(row)
