from functools import lru_cache

from .local_taxonomy import CATEGORIES, LocalTaxonomy
from .provider import TaxonomyProvider


@lru_cache(maxsize=1)
def get_default_taxonomy_provider() -> TaxonomyProvider:
    return LocalTaxonomy()


__all__ = ["CATEGORIES", "TaxonomyProvider", "LocalTaxonomy", "get_default_taxonomy_provider"]
