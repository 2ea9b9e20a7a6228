"""Tests for related origin management."""

import pytest

from authcore.domain.exceptions import ConflictError, NotFoundError, ValidationError
from authcore.services import RelatedOriginService
from authcore.services.related_origin_service import normalize_origin


class TestNormalizeOrigin:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("https://shop.example.com", "https://shop.example.com"),
            ("https://shop.example.com/", "https://shop.example.com"),
            ("  https://Shop.Example.com:8443 ", "https://shop.example.com:8443"),
        ],
    )
    def test_valid(self, raw, expected):
        assert normalize_origin(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "http://shop.example.com",
            "https://shop.example.com/login",
            "https://shop.example.com?x=1",
            "https://shop.example.com#top",
            "https://user:pw@shop.example.com",
            "https://*.example.com",
            "shop.example.com",
            "",
        ],
    )
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            normalize_origin(raw)


class TestRelatedOriginService:
    def test_create_and_well_known_document(self, db_session):
        service = RelatedOriginService(db_session)
        service.create("https://b.example.com", sort_order=2)
        service.create("https://a.example.com", sort_order=1)
        service.create("https://off.example.com", is_active=False)

        assert service.well_known_document() == {
            "origins": ["https://a.example.com", "https://b.example.com"]
        }
        assert len(service.list_origins()) == 3

    def test_duplicate_after_normalization(self, db_session):
        service = RelatedOriginService(db_session)
        service.create("https://a.example.com")

        with pytest.raises(ConflictError):
            service.create("https://A.example.com/")

    def test_update(self, db_session):
        service = RelatedOriginService(db_session)
        record = service.create("https://a.example.com", description="Shop")

        updated = service.update(record.id, origin="https://b.example.com/", is_active=False)

        assert updated.origin == "https://b.example.com"
        assert updated.description == "Shop"
        assert service.active_origins() == []

    def test_update_to_existing_origin(self, db_session):
        service = RelatedOriginService(db_session)
        service.create("https://a.example.com")
        other = service.create("https://b.example.com")

        with pytest.raises(ConflictError):
            service.update(other.id, origin="https://a.example.com")

    def test_delete(self, db_session):
        service = RelatedOriginService(db_session)
        record = service.create("https://a.example.com")

        service.delete(record.id)

        assert service.list_origins() == []
        with pytest.raises(NotFoundError):
            service.delete(record.id)


def test_well_known_endpoint(client, db_session):
    RelatedOriginService(db_session).create("https://a.example.com")

    response = client.get("/.well-known/webauthn")

    assert response.status_code == 200
    assert response.json() == {"origins": ["https://a.example.com"]}
