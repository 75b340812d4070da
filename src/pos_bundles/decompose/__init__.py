"""Bundle decomposition engine."""

from pos_bundles.decompose.engine import Decomposer, DecompositionResult, decompose

__all__ = ["DecompositionResult", "Decomposer", "decompose"]
