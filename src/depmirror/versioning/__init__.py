"""Version selection and recursive dependency resolution."""

from .resolver import VersionResolver, pick_version

__all__ = ["VersionResolver", "pick_version"]
