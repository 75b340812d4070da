"""Name reconciliation: component name -> catalog id.

Resolution order:
    1. exact, case-insensitive name match against the catalog;
    2. first catalog entry (catalog order) where one name contains the
       other, or where both names share an affinity keyword (``sunset``,
       ``sac trio``, ``seau`` by default), except for ambiguous families
       where only exact spellings of whitelisted variants match;
    3. no match: the component keeps its own name and gets its declared id,
       or an id derived from its name.

Ambiguous families are data, not code: a ``ResolverRules`` instance holds
the list of ``AmbiguityRule`` objects and can be loaded from JSON::

    {
      "ambiguous_families": [
        {"family_pattern": "vn tropez",
         "allowed_exact_variants": ["vn tropez", "vn tropez clear ln"]}
      ],
      "affinity_keywords": ["sunset"]
    }

Resolution is stateless; nothing is cached between calls.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from pos_bundles.catalog.store import CatalogStore
from pos_bundles.exceptions import ConfigError
from pos_bundles.types import CatalogEntry
from pos_bundles.utils import synthetic_id

logger = logging.getLogger(__name__)

MATCH_EXACT = "exact"
MATCH_SUBSTRING = "substring"
MATCH_AFFINITY = "affinity"
MATCH_FALLBACK = "fallback"

DEFAULT_AFFINITY_KEYWORDS = ("sunset", "sac trio", "seau")


def _squash(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


@dataclass(frozen=True)
class AmbiguityRule:
    """A family of product names that must not be matched by substring.

    The rule applies when ``family_pattern`` occurs in both the component
    name and the candidate name. Inside the family two names match only
    when they are the same whitelisted variant (punctuation and spacing
    ignored) or identical.
    """

    family_pattern: str
    allowed_exact_variants: tuple[str, ...] = ()

    def applies(self, component: str, candidate: str) -> bool:
        pattern = self.family_pattern.lower()
        return pattern in component and pattern in candidate

    def allows(self, component: str, candidate: str) -> bool:
        if component == candidate:
            return True
        variants = {_squash(v) for v in self.allowed_exact_variants}
        squashed = _squash(component)
        return squashed in variants and squashed == _squash(candidate)


@dataclass
class ResolverRules:
    ambiguous_families: list[AmbiguityRule] = field(default_factory=list)
    # keyword present in both names is enough to match (checked before substring)
    affinity_keywords: tuple[str, ...] = ()

    @classmethod
    def default(cls) -> ResolverRules:
        return cls(
            ambiguous_families=[
                AmbiguityRule("vn tropez", ("vn tropez", "vn tropez clear ln")),
            ],
            affinity_keywords=DEFAULT_AFFINITY_KEYWORDS,
        )

    @classmethod
    def from_dict(cls, data: dict) -> ResolverRules:
        try:
            families = [
                AmbiguityRule(
                    family_pattern=str(f["family_pattern"]).lower(),
                    allowed_exact_variants=tuple(
                        str(v).lower() for v in f.get("allowed_exact_variants", [])
                    ),
                )
                for f in data.get("ambiguous_families", [])
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise ConfigError(f"Invalid resolver rules: {e}") from e
        keywords = tuple(str(k).lower() for k in data.get("affinity_keywords", []))
        return cls(ambiguous_families=families, affinity_keywords=keywords)

    @classmethod
    def from_file(cls, path: str | Path) -> ResolverRules:
        """Load rules from a JSON file.

        Raises:
            ConfigError: If the file is missing or malformed.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read resolver rules {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Resolver rules {path} must be a JSON object")
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        return {
            "ambiguous_families": [
                {
                    "family_pattern": r.family_pattern,
                    "allowed_exact_variants": list(r.allowed_exact_variants),
                }
                for r in self.ambiguous_families
            ],
            "affinity_keywords": list(self.affinity_keywords),
        }


@dataclass(frozen=True)
class Resolution:
    id: str
    name: str
    entry: CatalogEntry | None = None
    matched_by: str = MATCH_FALLBACK

    @property
    def resolved(self) -> bool:
        return self.entry is not None


class NameResolver:
    def __init__(self, rules: ResolverRules | None = None) -> None:
        self.rules = rules or ResolverRules.default()

    def _candidate_matches(self, component: str, candidate: str) -> str | None:
        for rule in self.rules.ambiguous_families:
            if rule.applies(component, candidate):
                return MATCH_EXACT if rule.allows(component, candidate) else None
        for keyword in self.rules.affinity_keywords:
            if keyword in component and keyword in candidate:
                return MATCH_AFFINITY
        if component in candidate or candidate in component:
            return MATCH_SUBSTRING
        return None

    def resolve(
        self, component_name: str, catalog: CatalogStore, declared_id: str | None = None
    ) -> Resolution:
        """Find the catalog entry for a component name.

        Never fails: an unmatched name resolves to ``declared_id`` when given,
        else to ``synthetic_id(component_name)``, with the name unchanged.
        """
        name = (component_name or "").strip()
        wanted = name.lower()

        entry = catalog.by_name(name) if name else None
        if entry is not None:
            return Resolution(entry.id, entry.name, entry, MATCH_EXACT)

        if wanted:
            for candidate in catalog:
                cand = candidate.name.strip().lower()
                if not cand:
                    continue
                how = self._candidate_matches(wanted, cand)
                if how:
                    logger.debug("Resolved %r -> %r (%s, %s)", name, candidate.name, candidate.id, how)
                    return Resolution(candidate.id, candidate.name, candidate, how)

        fallback_id = (declared_id or "").strip() or synthetic_id(name)
        logger.debug("No catalog match for %r; using id %s", name, fallback_id)
        return Resolution(fallback_id, name, None, MATCH_FALLBACK)
