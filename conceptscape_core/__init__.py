"""
Conceptscape - spoken concepts to explorable 3D scenes.

Voice capture extracts a ``show me <concept>`` command, the orchestrator
assembles educational content and a 3D asset for it, and the conversion
gateway turns generated images into Gaussian-splat worlds.
"""

__version__ = "0.1.0"

from .config import Settings, get_settings
from .errors import ConceptscapeError

__all__ = ["__version__", "Settings", "get_settings", "ConceptscapeError"]
