"""Build collaborators: logical dependency lists for generated programs."""

from .dependency_list import collect_dependencies

__all__ = ["collect_dependencies"]
