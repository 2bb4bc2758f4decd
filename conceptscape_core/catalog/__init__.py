"""Scene catalog: known concepts, fuzzy lookup and cache verification."""

from .registry import (
    BUILTIN_CATALOG_PATH,
    CatalogEntry,
    CatalogMatch,
    MatchType,
    SceneCatalog,
    default_catalog,
    load_catalog,
    normalize_concept,
    to_snake_case,
)
from .verifier import AssetVerifier, CacheCheck

__all__ = [
    "BUILTIN_CATALOG_PATH",
    "CatalogEntry",
    "CatalogMatch",
    "MatchType",
    "SceneCatalog",
    "default_catalog",
    "load_catalog",
    "normalize_concept",
    "to_snake_case",
    "AssetVerifier",
    "CacheCheck",
]
