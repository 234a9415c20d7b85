"""
Background maintenance for the artifact store.
"""

from .reclaim import Reclaimer

__all__ = ["Reclaimer"]
