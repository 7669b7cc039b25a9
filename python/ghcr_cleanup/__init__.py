"""
Garbage collection for GitHub Container Registry packages.

Builds the reference map between multi-architecture index manifests and their
children, classifies package versions against the configured retention
policies and deletes them without breaking images that are still referenced.
"""

__version__ = "1.0.0"
