"""Tests for the consent registry."""

import pytest

from authcore.db import Consent
from authcore.domain.artifacts import ArtifactType
from authcore.domain.exceptions import (
    ConflictError,
    ConsentExpiredOrRevoked,
    ForbiddenError,
    ValidationError,
)


class TestConsentBoundary:
    def test_resource_outside_granted_set(self, consent_registry):
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A", "B"])

        assert consent_registry.is_resource_authorized("cust-1", "tpp", "A") is True
        assert consent_registry.is_resource_authorized("cust-1", "tpp", "B") is True
        assert consent_registry.is_resource_authorized("cust-1", "tpp", "C") is False

    def test_revoke_removes_access(self, consent_registry):
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A", "B"])

        consent_registry.revoke("cust-1", "tpp")

        assert consent_registry.is_resource_authorized("cust-1", "tpp", "A") is False
        assert consent_registry.authorized_scopes("cust-1", "tpp") == set()

    def test_consent_is_per_client(self, consent_registry):
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"])

        assert consent_registry.is_resource_authorized("cust-1", "other-tpp", "A") is False
        assert consent_registry.is_resource_authorized("cust-2", "tpp", "A") is False

    def test_authorized_scopes(self, consent_registry):
        consent_registry.grant("cust-1", "tpp", ["accounts", "balances", "accounts"], ["A"])

        assert consent_registry.authorized_scopes("cust-1", "tpp") == {"accounts", "balances"}
        assert consent_registry.authorized_scopes("cust-1", "nobody") == set()


class TestSupersession:
    def test_new_grant_supersedes_and_keeps_history(self, db_session, consent_registry, clock):
        first = consent_registry.grant("cust-1", "tpp", ["accounts"], ["A", "B"])
        clock.advance(60)
        second = consent_registry.grant("cust-1", "tpp", ["accounts"], ["C"])

        assert consent_registry.is_resource_authorized("cust-1", "tpp", "A") is False
        assert consent_registry.is_resource_authorized("cust-1", "tpp", "C") is True

        history = consent_registry.history("cust-1", "tpp")
        assert [c.id for c in history] == [first.id, second.id]
        assert history[0].superseded_at is not None
        assert history[1].superseded_at is None
        assert db_session.query(Consent).count() == 2

    def test_grant_after_revoke(self, consent_registry, clock):
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"])
        consent_registry.revoke("cust-1", "tpp")
        clock.advance(1)
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"])

        assert consent_registry.is_resource_authorized("cust-1", "tpp", "A") is True
        assert len(consent_registry.history("cust-1", "tpp")) == 2

    def test_duplicate_grant_id_is_conflict(self, consent_registry):
        consent_registry.grant("cust-1", "tpp", [], ["A"], grant_id="G")

        with pytest.raises(ConflictError):
            consent_registry.grant("cust-2", "tpp", [], ["A"], grant_id="G")
        # the failed grant changed nothing
        assert consent_registry.is_resource_authorized("cust-1", "tpp", "A") is True


class TestExpiry:
    def test_consent_expires(self, consent_registry, clock):
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"], ttl_seconds=3600)
        clock.advance(3599)
        assert consent_registry.is_resource_authorized("cust-1", "tpp", "A") is True

        clock.advance(1)
        assert consent_registry.is_resource_authorized("cust-1", "tpp", "A") is False
        assert consent_registry.authorized_scopes("cust-1", "tpp") == set()

    @pytest.mark.parametrize("ttl", [0, -60])
    def test_non_positive_ttl_is_rejected(self, db_session, consent_registry, ttl):
        with pytest.raises(ValidationError):
            consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"], ttl_seconds=ttl)

        assert db_session.query(Consent).count() == 0

    def test_revoke_expired_is_noop(self, consent_registry, clock):
        consent_registry.grant("cust-1", "tpp", [], ["A"], ttl_seconds=10)
        clock.advance(11)

        assert consent_registry.revoke("cust-1", "tpp") is None


class TestRevocation:
    def test_revoke_is_soft(self, db_session, consent_registry):
        consent = consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"])

        revoked = consent_registry.revoke("cust-1", "tpp")

        assert revoked.id == consent.id
        assert revoked.revoked_at is not None
        assert db_session.get(Consent, consent.id) is not None

    def test_revoke_without_consent(self, consent_registry):
        assert consent_registry.revoke("cust-1", "tpp") is None

    def test_revoke_cascades_to_grant_tokens(self, consent_registry, artifact_store):
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"], grant_id="G")
        artifact_store.upsert("at-1", ArtifactType.ACCESS_TOKEN, {"grantId": "G"})
        artifact_store.upsert("rt-1", ArtifactType.REFRESH_TOKEN, {"grantId": "G"})

        consent_registry.revoke("cust-1", "tpp")

        assert artifact_store.find("at-1", ArtifactType.ACCESS_TOKEN) is None
        assert artifact_store.find("rt-1", ArtifactType.REFRESH_TOKEN) is None
        assert consent_registry.find_by_grant_id("G").revoked_at is not None


class TestRequireAccess:
    def test_active_consent_is_returned(self, consent_registry):
        consent = consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"])

        assert consent_registry.require_access("cust-1", "tpp", resource_id="A").id == consent.id
        assert consent_registry.require_access("cust-1", "tpp", scope="accounts").id == consent.id

    def test_no_consent(self, consent_registry):
        with pytest.raises(ConsentExpiredOrRevoked):
            consent_registry.require_access("cust-1", "tpp", resource_id="A")

    def test_revoked_consent(self, consent_registry):
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"])
        consent_registry.revoke("cust-1", "tpp")

        with pytest.raises(ConsentExpiredOrRevoked):
            consent_registry.require_access("cust-1", "tpp", resource_id="A")

    def test_resource_not_covered(self, consent_registry):
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"])

        with pytest.raises(ForbiddenError) as excinfo:
            consent_registry.require_access("cust-1", "tpp", resource_id="B")
        assert not isinstance(excinfo.value, ConsentExpiredOrRevoked)

    def test_scope_not_covered(self, consent_registry):
        consent_registry.grant("cust-1", "tpp", ["accounts"], ["A"])

        with pytest.raises(ForbiddenError):
            consent_registry.require_access("cust-1", "tpp", scope="payments")
