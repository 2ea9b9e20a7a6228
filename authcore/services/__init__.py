"""Service layer entry points."""

from .artifact_store import ArtifactAdapter, ProtocolArtifactStore
from .ceremony_service import CeremonyOrchestrator
from .challenge_store import (
    Challenge,
    ChallengeStore,
    DatabaseChallengeStore,
    RedisChallengeStore,
    get_challenge_store,
)
from .consent_service import ConsentRegistry
from .related_origin_service import RelatedOriginService
from .session_service import LoginSession, LoginSessionService

__all__ = [
    "ArtifactAdapter",
    "CeremonyOrchestrator",
    "Challenge",
    "ChallengeStore",
    "ConsentRegistry",
    "DatabaseChallengeStore",
    "LoginSession",
    "LoginSessionService",
    "ProtocolArtifactStore",
    "RedisChallengeStore",
    "RelatedOriginService",
    "get_challenge_store",
]
