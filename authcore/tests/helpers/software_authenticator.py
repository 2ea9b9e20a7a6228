"""In-memory WebAuthn authenticator producing responses that py_webauthn accepts.

Keys are ECDSA P-256 (ES256); registration uses "none" attestation. The
signature counter is under test control: ``counter_step`` models
authenticators that increment (1) or never increment (0), and
``get_assertion(sign_count=...)`` replays an arbitrary value.
"""

from __future__ import annotations

import hashlib
import json
import os
import struct
from dataclasses import dataclass, field
from typing import Any, Optional

import cbor2
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.hashes import SHA256
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

FLAG_UP = 0x01
FLAG_UV = 0x04
FLAG_AT = 0x40


def _cose_key(public_key: ec.EllipticCurvePublicKey) -> bytes:
    numbers = public_key.public_numbers()
    return cbor2.dumps(
        {
            1: 2,  # kty: EC2
            3: -7,  # alg: ES256
            -1: 1,  # crv: P-256
            -2: numbers.x.to_bytes(32, "big"),
            -3: numbers.y.to_bytes(32, "big"),
        }
    )


def _client_data(ceremony_type: str, challenge: str, origin: str) -> bytes:
    return json.dumps(
        {"type": ceremony_type, "challenge": challenge, "origin": origin, "crossOrigin": False},
        separators=(",", ":"),
    ).encode("utf-8")


@dataclass
class SoftwareCredential:
    credential_id: bytes
    private_key: ec.EllipticCurvePrivateKey
    rp_id: str
    user_handle: Optional[str] = None
    sign_count: int = 0

    @property
    def id(self) -> str:
        return bytes_to_base64url(self.credential_id)


@dataclass
class SoftwareAuthenticator:
    counter_step: int = 1
    aaguid: bytes = b"\x00" * 16
    credentials: dict[str, SoftwareCredential] = field(default_factory=dict)

    def make_credential(
        self,
        public_key: dict[str, Any],
        origin: str,
        transports: Optional[list[str]] = None,
        attachment: Optional[str] = "platform",
    ) -> dict[str, Any]:
        """Answer ``navigator.credentials.create`` for the given options."""
        rp_id = public_key["rp"]["id"]
        private_key = ec.generate_private_key(ec.SECP256R1())
        credential = SoftwareCredential(
            credential_id=os.urandom(32),
            private_key=private_key,
            rp_id=rp_id,
            user_handle=public_key.get("user", {}).get("id"),
        )
        self.credentials[credential.id] = credential

        auth_data = (
            hashlib.sha256(rp_id.encode("utf-8")).digest()
            + struct.pack(">BI", FLAG_UP | FLAG_UV | FLAG_AT, 0)
            + self.aaguid
            + struct.pack(">H", len(credential.credential_id))
            + credential.credential_id
            + _cose_key(private_key.public_key())
        )
        attestation_object = cbor2.dumps({"fmt": "none", "attStmt": {}, "authData": auth_data})
        client_data = _client_data("webauthn.create", public_key["challenge"], origin)

        response: dict[str, Any] = {
            "id": credential.id,
            "rawId": credential.id,
            "type": "public-key",
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "attestationObject": bytes_to_base64url(attestation_object),
                "transports": transports if transports is not None else ["internal"],
            },
            "clientExtensionResults": {},
        }
        if attachment is not None:
            response["authenticatorAttachment"] = attachment
        return response

    def get_assertion(
        self,
        public_key: dict[str, Any],
        origin: str,
        credential_id: Optional[str] = None,
        sign_count: Optional[int] = None,
    ) -> dict[str, Any]:
        """Answer ``navigator.credentials.get`` for the given options.

        Without ``credential_id`` the first credential in ``allowCredentials``
        (or the only one held, for discoverable flows) signs.
        """
        credential = self._select(public_key, credential_id)
        if sign_count is None:
            credential.sign_count += self.counter_step
            sign_count = credential.sign_count

        auth_data = hashlib.sha256(credential.rp_id.encode("utf-8")).digest() + struct.pack(
            ">BI", FLAG_UP | FLAG_UV, sign_count
        )
        client_data = _client_data("webauthn.get", public_key["challenge"], origin)
        signature = credential.private_key.sign(
            auth_data + hashlib.sha256(client_data).digest(), ec.ECDSA(SHA256())
        )

        return {
            "id": credential.id,
            "rawId": credential.id,
            "type": "public-key",
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "authenticatorData": bytes_to_base64url(auth_data),
                "signature": bytes_to_base64url(signature),
                "userHandle": credential.user_handle,
            },
            "authenticatorAttachment": "platform",
            "clientExtensionResults": {},
        }

    def _select(self, public_key: dict[str, Any], credential_id: Optional[str]) -> SoftwareCredential:
        if credential_id is not None:
            return self.credentials[credential_id]
        for allowed in public_key.get("allowCredentials") or []:
            key = bytes_to_base64url(base64url_to_bytes(allowed["id"]))
            if key in self.credentials:
                return self.credentials[key]
        if not public_key.get("allowCredentials") and len(self.credentials) == 1:
            return next(iter(self.credentials.values()))
        raise LookupError("No matching credential held by this authenticator")


def tamper(value: str) -> str:
    """Flip the last byte of a base64url value."""
    raw = bytearray(base64url_to_bytes(value))
    raw[-1] ^= 0x01
    return bytes_to_base64url(bytes(raw))
