"""Tests for audit logging."""

import logging
from types import SimpleNamespace

from authcore.core.audit import (
    AuditAction,
    AuditContext,
    AuditEvent,
    AuditOutcome,
    audit_log,
    create_audit_context_from_request,
    mask_sensitive_data,
)
from authcore.core.logging import MASK


class TestAuditEvent:
    def test_action_values(self):
        assert AuditAction.PASSKEY_LOGIN_FAILURE.value == "passkey.login.failure"
        assert AuditAction.CONSENT_REVOKE.value == "consent.revoke"

    def test_to_dict(self):
        event = AuditEvent(
            action=AuditAction.PASSKEY_LOGIN_FAILURE,
            outcome=AuditOutcome.FAILURE,
            context=AuditContext(principal_id="admin-1"),
            resource_type="credential",
            resource_id="cred-1",
            error_kind="counter_regression",
        )

        data = event.to_dict()

        assert data["audit"] is True
        assert data["action"] == "passkey.login.failure"
        assert data["outcome"] == "failure"
        assert data["context"]["principal_id"] == "admin-1"
        assert data["resource"] == {"type": "credential", "id": "cred-1"}
        assert data["kind"] == "counter_regression"
        assert "details" not in data

    def test_details_are_masked(self):
        event = AuditEvent(
            action=AuditAction.PASSKEY_REGISTER_SUCCESS,
            outcome=AuditOutcome.SUCCESS,
            context=AuditContext(),
            details={"aaguid": "0000", "public_key": "pQECAyYg"},
        )

        assert event.to_dict()["details"] == {"aaguid": "0000", "public_key": MASK}


class TestMaskSensitiveData:
    def test_nested_values(self):
        data = {"client": "tpp", "nested": {"access_token": "abc", "scope": "accounts"}}

        masked = mask_sensitive_data(data)

        assert masked == {"client": "tpp", "nested": {"access_token": MASK, "scope": "accounts"}}

    def test_custom_keys(self):
        assert mask_sensitive_data({"pin": "1234"}, {"pin"}) == {"pin": MASK}


class TestAuditLog:
    def test_failure_logged_as_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="authcore.audit"):
            audit_log(
                AuditAction.PASSKEY_LOGIN_FAILURE,
                AuditOutcome.FAILURE,
                context=AuditContext(principal_id="someone", ip_address="10.0.0.1"),
                principal_id="admin-1",
                error_kind="signature_invalid",
            )

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.context["principal_id"] == "admin-1"
        assert record.context["ip_address"] == "10.0.0.1"
        assert record.kind == "signature_invalid"

    def test_success_logged_as_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="authcore.audit"):
            audit_log(AuditAction.SESSION_CREATE, AuditOutcome.SUCCESS, principal_id="admin-1")

        assert caplog.records[-1].levelno == logging.INFO
        assert caplog.records[-1].getMessage() == "AUDIT: session.create - success"

    def test_context_is_not_mutated(self):
        context = AuditContext(principal_id="original")

        audit_log(AuditAction.CONSENT_GRANT, AuditOutcome.SUCCESS, context=context, principal_id="x")

        assert context.principal_id == "original"


class TestAuditContextFromRequest:
    def test_forwarded_for_wins(self):
        request = SimpleNamespace(
            headers={
                "x-forwarded-for": "203.0.113.7, 10.0.0.1",
                "user-agent": "pytest",
                "x-request-id": "req-1",
            },
            client=SimpleNamespace(host="127.0.0.1"),
        )
        principal = SimpleNamespace(id="admin-1", email="admin@example.com", kind="admin")

        context = create_audit_context_from_request(request, principal)

        assert context.ip_address == "203.0.113.7"
        assert context.user_agent == "pytest"
        assert context.request_id == "req-1"
        assert context.principal_id == "admin-1"
        assert context.principal_kind == "admin"

    def test_client_host_fallback(self):
        request = SimpleNamespace(headers={}, client=SimpleNamespace(host="127.0.0.1"))

        context = create_audit_context_from_request(request)

        assert context.ip_address == "127.0.0.1"
        assert context.principal_id is None
