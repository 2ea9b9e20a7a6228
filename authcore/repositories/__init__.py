"""Repository layer for persistence access."""

from .consent_repository import ConsentRepository
from .credential_repository import CredentialRepository
from .principal_repository import PrincipalRepository
from .related_origin_repository import RelatedOriginRepository

__all__ = [
    "ConsentRepository",
    "CredentialRepository",
    "PrincipalRepository",
    "RelatedOriginRepository",
]
