"""Bundle definitions: registry, legacy normalization and naming."""

from pos_bundles.compositions.normalize import parse_legacy_component, parse_registry_document
from pos_bundles.compositions.registry import CompositionRegistry

__all__ = ["CompositionRegistry", "parse_legacy_component", "parse_registry_document"]
