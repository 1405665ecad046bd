"""
bundle_transform_pipeline.py
Runs the catalog-building stages in order: cross-referencing, identifier
cataloguing, then spec resolution. Each stage sees every module of the
catalog, so cross-references are known for all modules before any field
is resolved against another module.
"""
from typing import List, Protocol

from bundle_model import Catalog


class BundleTransform(Protocol):
    def transform(self, catalog: Catalog) -> Catalog:
        """Return a new Catalog; the one passed in is left as it was."""
        ...


def run_bundle_transform_pipeline(
    catalog: Catalog,
    transforms: List[BundleTransform]
) -> Catalog:
    """Apply each stage to the whole catalog in turn and return the last result."""
    for transform in transforms:
        catalog = transform.transform(catalog)
    return catalog
