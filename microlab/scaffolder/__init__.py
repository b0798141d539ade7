"""microlab scaffolder -- generates Vite + Tailwind micro-site projects.

Quick usage::

    from microlab.config import FeatureSet
    from microlab.scaffolder import ProjectGenerator, derive_urls, resolve_identity

    identity = resolve_identity("3d Cube")
    generator = ProjectGenerator(
        identity,
        FeatureSet(template="react"),
        derive_urls(identity, "velcrafting"),
        description="A spinning cube",
    )
    generator.create_project_dir(Path("micros"))
    await generator.generate()
"""

from microlab.scaffolder.generator import ProjectGenerator
from microlab.scaffolder.identity import (
    ProjectIdentity,
    ProjectUrls,
    derive_urls,
    resolve_identity,
    slugify,
)
from microlab.scaffolder.manifest import ManifestPatcher, patch_manifest
from microlab.scaffolder.markup import Insertion, InsertionPoint, Marker, MarkupDocument
from microlab.scaffolder.templates import TemplateRenderer

__all__ = [
    "Insertion",
    "InsertionPoint",
    "ManifestPatcher",
    "Marker",
    "MarkupDocument",
    "ProjectGenerator",
    "ProjectIdentity",
    "ProjectUrls",
    "TemplateRenderer",
    "derive_urls",
    "patch_manifest",
    "resolve_identity",
    "slugify",
]
