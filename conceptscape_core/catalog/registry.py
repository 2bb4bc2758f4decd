"""
Scene Catalog - Known Concepts and Their Assets

An immutable in-memory table of pre-registered scenes. Lookup never returns
None: when nothing scores, the first-listed entry is handed back as a weak
match and callers must not treat it as authoritative.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple, Union

import structlog
import yaml

logger = structlog.get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")

BUILTIN_CATALOG_PATH = Path(__file__).with_name("scenes.yaml")


# =============================================================================
# Normalization
# =============================================================================


def normalize_concept(text: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", (text or "").strip().lower())


def to_snake_case(text: str) -> str:
    """Normalized concept with spaces replaced by underscores."""
    return normalize_concept(text).replace(" ", "_")


# =============================================================================
# Types
# =============================================================================


class MatchType(str, Enum):
    """How a catalog entry was selected."""

    EXACT = "exact"
    TAGS = "tags"
    DEFAULT = "default"


@dataclass(frozen=True)
class CatalogEntry:
    """A pre-registered mapping from a concept to a known 3D asset."""

    id: str
    title: str
    primary_asset_ref: str
    secondary_asset_ref: Optional[str] = None
    tags: FrozenSet[str] = field(default_factory=frozenset)

    # Tags in declaration order; scoring sums over all of them so order
    # only matters for reproducible debug output.
    ordered_tags: Tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        id: str,
        title: str,
        primary_asset_ref: str,
        secondary_asset_ref: Optional[str] = None,
        tags: Iterable[str] = (),
    ) -> "CatalogEntry":
        ordered = tuple(dict.fromkeys(normalize_concept(t) for t in tags if t and t.strip()))
        return cls(
            id=id,
            title=title,
            primary_asset_ref=primary_asset_ref,
            secondary_asset_ref=secondary_asset_ref,
            tags=frozenset(ordered),
            ordered_tags=ordered,
        )


@dataclass(frozen=True)
class CatalogMatch:
    """Result of a catalog lookup."""

    entry: CatalogEntry
    match_type: MatchType
    score: int = 0

    @property
    def is_weak(self) -> bool:
        """Default-entry matches carry no evidence of relevance."""
        return self.match_type == MatchType.DEFAULT


# =============================================================================
# Catalog
# =============================================================================


class SceneCatalog:
    """
    Read-only table of known scenes with fuzzy lookup.

    Matching, in order:
        1. exact id match on the snake_case query (first wins)
        2. tag scoring: +2 per tag that contains or is contained in the
           whole query, +1 per query word that contains or is contained
           in a tag; ties keep the earlier entry
        3. the first-listed entry as a weak default

    There is deliberately no minimum-score floor before step 3; a single
    shared letter sequence is enough to win step 2.
    """

    def __init__(
        self,
        entries: Iterable[CatalogEntry],
        local_namespace: str = "/scenes/",
    ):
        self._entries: Tuple[CatalogEntry, ...] = tuple(entries)
        if not self._entries:
            raise ValueError("Scene catalog requires at least one entry")

        self._by_id: Dict[str, CatalogEntry] = {}
        for entry in self._entries:
            self._by_id.setdefault(entry.id, entry)

        self.local_namespace = local_namespace

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def default_entry(self) -> CatalogEntry:
        return self._entries[0]

    def get(self, entry_id: str) -> Optional[CatalogEntry]:
        return self._by_id.get(entry_id)

    def is_local(self, entry: CatalogEntry) -> bool:
        """True when the entry's primary asset lives under the local namespace."""
        return bool(entry.primary_asset_ref) and entry.primary_asset_ref.startswith(
            self.local_namespace
        )

    def lookup(self, query: str) -> CatalogMatch:
        """Map a free-text concept to the best catalog entry."""
        normalized = normalize_concept(query)
        snake = normalized.replace(" ", "_")

        for entry in self._entries:
            if entry.id == snake:
                return CatalogMatch(entry=entry, match_type=MatchType.EXACT)

        best: Optional[CatalogEntry] = None
        best_score = 0
        words = normalized.split(" ") if normalized else []

        for entry in self._entries:
            score = self._score(entry, normalized, words)
            if score > best_score:
                best_score = score
                best = entry

        if best is not None:
            return CatalogMatch(entry=best, match_type=MatchType.TAGS, score=best_score)

        logger.debug("No catalog match, using default entry", query=normalized)
        return CatalogMatch(entry=self.default_entry, match_type=MatchType.DEFAULT)

    def find(self, query: str) -> CatalogEntry:
        """Convenience wrapper returning only the matched entry."""
        return self.lookup(query).entry

    @staticmethod
    def _score(entry: CatalogEntry, normalized: str, words: List[str]) -> int:
        score = 0
        for tag in entry.ordered_tags:
            if normalized and (tag in normalized or normalized in tag):
                score += 2
            for word in words:
                if tag in word or word in tag:
                    score += 1
        return score


# =============================================================================
# Loading
# =============================================================================


def load_catalog(
    path: Union[str, Path],
    local_namespace: str = "/scenes/",
) -> SceneCatalog:
    """
    Load a catalog from YAML.

    Expected layout:
        scenes:
          - id: photosynthesis
            title: Photosynthesis
            primary: /scenes/photosynthesis.spz
            secondary: null
            tags: [biology, plants]
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    entries = []
    for raw in data.get("scenes", []):
        if not raw.get("id") or not raw.get("primary"):
            raise ValueError(f"Catalog entry missing id or primary asset: {raw!r}")
        entries.append(
            CatalogEntry.create(
                id=str(raw["id"]),
                title=str(raw.get("title") or raw["id"]),
                primary_asset_ref=str(raw["primary"]),
                secondary_asset_ref=raw.get("secondary"),
                tags=raw.get("tags") or [],
            )
        )

    logger.info("Scene catalog loaded", path=str(path), entries=len(entries))
    return SceneCatalog(entries, local_namespace=local_namespace)


def default_catalog(local_namespace: str = "/scenes/") -> SceneCatalog:
    """The catalog shipped with the package."""
    return load_catalog(BUILTIN_CATALOG_PATH, local_namespace=local_namespace)
