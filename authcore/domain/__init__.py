"""Domain layer primitives (value objects, artifact kinds, exceptions)."""

from . import artifacts, exceptions, webauthn
from .artifacts import ArtifactPayload, ArtifactType

__all__ = ["ArtifactPayload", "ArtifactType", "artifacts", "exceptions", "webauthn"]
