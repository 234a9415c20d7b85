"""
Audio references and their resolution into local artifacts.
"""

from .references import (
    AudioReference,
    Instrumental,
    LabeledStem,
    LocalRef,
    RemoteRef,
    StemSet,
    content_type_for,
    instrumental_from_payload,
    instrumental_to_payload,
    parse_reference,
    public_url,
    reference_token,
    retrieval_url,
)
from .resolver import Resolver

__all__ = [
    "AudioReference",
    "Instrumental",
    "LabeledStem",
    "LocalRef",
    "RemoteRef",
    "StemSet",
    "content_type_for",
    "instrumental_from_payload",
    "instrumental_to_payload",
    "parse_reference",
    "public_url",
    "reference_token",
    "retrieval_url",
    "Resolver",
]
