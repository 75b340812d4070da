"""Component name reconciliation against the catalog."""

from pos_bundles.reconcile.resolver import AmbiguityRule, NameResolver, Resolution, ResolverRules

__all__ = ["AmbiguityRule", "NameResolver", "Resolution", "ResolverRules"]
