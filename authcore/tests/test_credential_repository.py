"""Tests for principal and credential repositories."""

from datetime import UTC, datetime

import pytest

from authcore.db import WebAuthnCredential
from authcore.domain.exceptions import ConflictError, DuplicateCredentialError
from authcore.domain.webauthn import DeviceType, NewCredential, Transport
from authcore.repositories import CredentialRepository, PrincipalRepository


def _credential(credential_id: str, sign_count: int = 0) -> NewCredential:
    return NewCredential(
        credential_id=credential_id,
        public_key=b"\x01\x02",
        sign_count=sign_count,
        device_type=DeviceType.MULTI_DEVICE,
        backed_up=True,
        transports=[Transport.INTERNAL, Transport.HYBRID],
    )


class TestCredentialRepository:
    def test_register_and_find(self, db_session, admin):
        repo = CredentialRepository(db_session)
        created = repo.register(admin.id, _credential("cred-1"))

        found = repo.find_by_credential_id("cred-1")
        assert found.id == created.id
        assert found.principal_id == "admin-1"
        assert found.device_type == "multi_device"
        assert found.transports == ["internal", "hybrid"]
        assert found.created_at is not None
        assert found.last_used_at is None

    def test_register_duplicate_is_conflict(self, db_session, admin, customer):
        repo = CredentialRepository(db_session)
        repo.register(admin.id, _credential("cred-1"))

        with pytest.raises(DuplicateCredentialError):
            repo.register(customer.id, _credential("cred-1"))
        assert issubclass(DuplicateCredentialError, ConflictError)
        assert db_session.query(WebAuthnCredential).count() == 1

    def test_list_for_principal_ordered_by_creation(self, db_session, admin, customer):
        repo = CredentialRepository(db_session)
        repo.register(admin.id, _credential("first"))
        repo.register(customer.id, _credential("other"))
        repo.register(admin.id, _credential("second"))

        ids = [c.credential_id for c in repo.list_for_principal(admin.id)]
        assert ids == ["first", "second"]

    def test_update_after_auth(self, db_session, admin):
        repo = CredentialRepository(db_session)
        repo.register(admin.id, _credential("cred-1", sign_count=3))
        used_at = datetime(2026, 2, 1, tzinfo=UTC)

        assert repo.update_after_auth("cred-1", 4, used_at) is True
        db_session.expire_all()
        stored = repo.find_by_credential_id("cred-1")
        assert stored.sign_count == 4
        assert stored.last_used_at is not None

    def test_update_after_auth_guarded_by_expected_counter(self, db_session, admin):
        repo = CredentialRepository(db_session)
        repo.register(admin.id, _credential("cred-1", sign_count=5))

        assert repo.update_after_auth("cred-1", 6, datetime.now(UTC), expected_counter=4) is False
        db_session.expire_all()
        assert repo.find_by_credential_id("cred-1").sign_count == 5

    def test_delete_scoped_to_owner(self, db_session, admin, customer):
        repo = CredentialRepository(db_session)
        repo.register(admin.id, _credential("cred-1"))

        assert repo.delete_for_principal(customer.id, "cred-1") is False
        assert repo.delete_for_principal(admin.id, "cred-1") is True
        assert repo.find_by_credential_id("cred-1") is None


class TestPrincipalRepository:
    def test_email_is_normalized(self, db_session, customer):
        repo = PrincipalRepository(db_session)
        assert customer.email == "customer@example.com"
        assert repo.get_by_email(" CUSTOMER@example.com ").id == "customer-1"

    def test_duplicate_email_is_conflict(self, db_session, admin):
        with pytest.raises(ConflictError):
            PrincipalRepository(db_session).create("admin@example.com", "Again")

    def test_delete_cascades_to_credentials(self, db_session, admin):
        CredentialRepository(db_session).register(admin.id, _credential("cred-1"))

        PrincipalRepository(db_session).delete(admin)

        assert db_session.query(WebAuthnCredential).count() == 0
