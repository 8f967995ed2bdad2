"""ImpactGraph: cross-repository dependency graphs and change impact analysis."""

__version__ = "0.1.0"
