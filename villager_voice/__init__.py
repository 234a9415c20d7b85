"""
villager_voice - turn songs into Minecraft villager covers.

Uploaded audio goes through source separation and RVC voice conversion
on external services and is remixed locally. This package holds the
artifact store, result cache, reference resolver and stage orchestrator
that make the chain idempotent.
"""

__version__ = "0.3.0"
