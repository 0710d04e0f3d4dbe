"""
Gene model for EvoSim.

Every agent carries an 18-trait GeneSet stored as a float64 vector:

 0-7   baseline traits : speed, sense_range, size, energy_efficiency,
                         reproduction_threshold, mutation_rate, aggression,
                         color_hue
 8-17  predator traits : is_predator, hunting_speed, attack_power, defense,
                         stealth, pack_mentality, territory_size, metabolism,
                         intelligence, stamina

Each trait has a fixed valid range. GeneSet clamps on construction, so any
value produced by random_genes / crossover / mutate is in range.
"""

import colorsys

import numpy as np

# ──────────────────────────────────────────────────────────────────────────────
# Trait table
# ──────────────────────────────────────────────────────────────────────────────

#   name                      valid range          founder range
GENE_TABLE = (
    ("speed",                  (0.1,   3.0),   (0.8,   1.5)),
    ("sense_range",            (5.0, 150.0),   (30.0, 80.0)),
    ("size",                   (0.3,   2.5),   (0.9,   1.3)),
    ("energy_efficiency",      (0.1,   2.5),   (0.8,   1.2)),
    ("reproduction_threshold", (10.0, 200.0),  (60.0, 120.0)),
    ("mutation_rate",          (0.001, 0.3),   (0.02,  0.08)),
    ("aggression",             (0.0,   1.0),   (0.2,   0.8)),
    ("color_hue",              (0.0, 360.0),   (0.0, 360.0)),
    ("is_predator",            (0.0,   1.0),   (0.0,   0.3)),
    ("hunting_speed",          (0.5,   3.0),   (1.0,   2.0)),
    ("attack_power",           (0.1,   3.0),   (0.5,   1.5)),
    ("defense",                (0.1,   3.0),   (0.5,   1.5)),
    ("stealth",                (0.0,   1.0),   (0.0,   1.0)),
    ("pack_mentality",         (0.0,   1.0),   (0.0,   1.0)),
    ("territory_size",         (10.0, 300.0),  (50.0, 150.0)),
    ("metabolism",             (0.1,   3.0),   (0.8,   1.4)),
    ("intelligence",           (0.1,   3.0),   (0.5,   1.5)),
    ("stamina",                (0.1,   3.0),   (0.5,   1.5)),
)

GENE_NAMES = tuple(row[0] for row in GENE_TABLE)
GENE_INDEX = {name: i for i, name in enumerate(GENE_NAMES)}
NUM_GENES  = len(GENE_NAMES)

GENE_MIN = np.array([row[1][0] for row in GENE_TABLE], dtype=np.float64)
GENE_MAX = np.array([row[1][1] for row in GENE_TABLE], dtype=np.float64)
INIT_MIN = np.array([row[2][0] for row in GENE_TABLE], dtype=np.float64)
INIT_MAX = np.array([row[2][1] for row in GENE_TABLE], dtype=np.float64)

PREDATOR_CUTOFF = 0.5          # is_predator above this => predator type
BLEND_RANGE     = (0.3, 0.7)   # crossover weight of parent A per trait
MUTATION_SCALE  = 0.05         # std-dev of a mutation, as a fraction of the range


class GeneSet:
    """
    Immutable, range-checked trait vector.

    Traits are readable as attributes (genes.speed, genes.territory_size, ...).
    """
    __slots__ = ("values",)

    def __init__(self, values):
        arr = np.asarray(values, dtype=np.float64)
        if arr.shape != (NUM_GENES,):
            raise ValueError(f"expected {NUM_GENES} gene values, got shape {arr.shape}")
        arr = np.clip(arr, GENE_MIN, GENE_MAX)
        arr.setflags(write=False)
        self.values = arr

    def __getattr__(self, name):
        idx = GENE_INDEX.get(name)
        if idx is None:
            raise AttributeError(name)
        return float(self.values[idx])

    def __eq__(self, other):
        if not isinstance(other, GeneSet):
            return NotImplemented
        return bool(np.array_equal(self.values, other.values))

    def __repr__(self):
        return f"GeneSet(speed={self.speed:.2f}, size={self.size:.2f}, predator={self.predator_type})"

    @property
    def predator_type(self) -> bool:
        return bool(self.values[GENE_INDEX["is_predator"]] > PREDATOR_CUTOFF)

    def as_dict(self) -> dict:
        return {name: float(v) for name, v in zip(GENE_NAMES, self.values)}

    @classmethod
    def from_dict(cls, traits: dict) -> "GeneSet":
        """Missing traits default to the middle of their founder range."""
        mid = (INIT_MIN + INIT_MAX) / 2.0
        return cls([traits.get(name, mid[i]) for i, name in enumerate(GENE_NAMES)])

    def in_range(self) -> bool:
        return bool(np.all((self.values >= GENE_MIN) & (self.values <= GENE_MAX)))


# ──────────────────────────────────────────────────────────────────────────────
# Genetic operators
# ──────────────────────────────────────────────────────────────────────────────

def random_genes(rng=None) -> GeneSet:
    """Draw a founder GeneSet uniformly from the founder ranges."""
    if rng is None:
        rng = np.random.default_rng()
    return GeneSet(rng.uniform(INIT_MIN, INIT_MAX))


def crossover(parent_a: GeneSet, parent_b: GeneSet, rng=None) -> GeneSet:
    """
    Blend crossover: each trait is a weighted average of the parents,
    with parent A's weight drawn per trait from BLEND_RANGE.
    """
    if rng is None:
        rng = np.random.default_rng()
    w = rng.uniform(BLEND_RANGE[0], BLEND_RANGE[1], size=NUM_GENES)
    return GeneSet(parent_a.values * w + parent_b.values * (1.0 - w))


def mutate(genes: GeneSet, rate: float, rng=None) -> GeneSet:
    """
    Perturb each trait independently with probability `rate` by a normal
    step scaled to the trait's range, then clamp.
    """
    if rng is None:
        rng = np.random.default_rng()
    hits = rng.random(NUM_GENES) < rate
    steps = rng.normal(0.0, MUTATION_SCALE, size=NUM_GENES) * (GENE_MAX - GENE_MIN)
    return GeneSet(genes.values + np.where(hits, steps, 0.0))


def inherit(parent_a: GeneSet, parent_b: GeneSet, rng=None) -> GeneSet:
    """Offspring genes: crossover, then mutation at parent A's own mutation rate."""
    if rng is None:
        rng = np.random.default_rng()
    child = crossover(parent_a, parent_b, rng)
    return mutate(child, parent_a.mutation_rate, rng)


# ──────────────────────────────────────────────────────────────────────────────
# Population-level helpers
# ──────────────────────────────────────────────────────────────────────────────

def gene_similarity(genes_a: GeneSet, genes_b: GeneSet) -> float:
    """Similarity (0..1): one minus the mean range-normalised trait distance."""
    span = GENE_MAX - GENE_MIN
    return 1.0 - float(np.mean(np.abs(genes_a.values - genes_b.values) / span))


def genetic_diversity(gene_matrix: np.ndarray, sample: int = 50, rng=None) -> float:
    """
    Average pairwise dissimilarity of a sample of gene rows.
    Returns value 0 (identical) -> 1 (maximally diverse).
    """
    n = len(gene_matrix)
    if n < 2:
        return 0.0
    if rng is None:
        rng = np.random.default_rng()
    idx = rng.choice(n, min(sample, n), replace=False)
    rows = np.asarray(gene_matrix, dtype=np.float64)[idx] / (GENE_MAX - GENE_MIN)
    diffs = np.abs(rows[:, None, :] - rows[None, :, :]).mean(axis=2)
    k = len(rows)
    return float(diffs.sum() / (k * (k - 1)))


def genes_to_color(genes: GeneSet) -> tuple:
    """
    Map color_hue to an RGB tuple; predators are drawn darker so the two
    types separate at a glance.
    """
    value = 0.55 if genes.predator_type else 0.95
    r, g, b = colorsys.hsv_to_rgb(genes.color_hue / 360.0, 0.8, value)
    return (int(r * 255), int(g * 255), int(b * 255))
