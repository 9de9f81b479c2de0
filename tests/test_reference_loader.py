"""Tests for loading and validating reference data."""

from decimal import Decimal

import pytest

from cpa_alerts.config.reference_loader import (
    ReferenceData,
    load_reference_data,
    parse_category,
    parse_client,
)
from cpa_alerts.errors import ConfigurationError
from cpa_alerts.models import ClientStatus, Partner

PARTNERS = """
partners:
  - {id: partner-001, name: Robert Johnson, email: rjohnson@firmcpa.com}
"""

CLIENTS = """
clients:
  - id: client-001
    name: Acme LLC
    partner: partner-001
    status: normal
    contacts:
      primary: {name: Pat Doe, email: pat@acme.com}
"""

CATEGORIES = """
categories:
  - id: exp-cat-001
    name: Software
    budget: 1000
    drivers:
      - {name: CRM, vendor: Salesforce, base_amount: 100}
"""


def write_reference(directory, partners=PARTNERS, clients=CLIENTS, categories=CATEGORIES):
    (directory / "partners.yaml").write_text(partners)
    (directory / "clients.yaml").write_text(clients)
    (directory / "expense_categories.yaml").write_text(categories)
    return directory


class TestBundledReference:
    """Tests for the packaged reference tables."""

    def test_tables_load(self, reference):
        assert len(reference.partners) == 3
        assert len(reference.clients) == 12
        assert [c.id for c in reference.categories] == ["exp-cat-001", "exp-cat-002", "exp-cat-003"]

    def test_lookups(self, reference):
        client = reference.client("client-002")

        assert client.automation_status == ClientStatus.SLOW_PAYER
        assert reference.partner_for(client).name == "Robert Johnson"
        assert reference.client_index("client-003") == 2
        assert reference.client("client-404") is None
        assert reference.category("exp-cat-002").budget_amount == Decimal("12000")

    def test_primary_contact_flagged(self, reference):
        client = reference.client("client-004")

        assert client.contacts.primary.is_primary is True
        assert client.contacts.escalation is None


class TestLoader:
    """Tests for YAML validation."""

    def test_minimal_directory(self, tmp_path):
        data = load_reference_data(write_reference(tmp_path))

        assert data.client("client-001").name == "Acme LLC"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_reference_data(tmp_path)

    def test_empty_client_table(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_reference_data(write_reference(tmp_path, clients="clients: []\n"))

    def test_unknown_partner(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_reference_data(write_reference(tmp_path, partners="partners: []\n"))

    def test_unknown_status(self):
        with pytest.raises(ConfigurationError):
            parse_client(
                {
                    "id": "c",
                    "name": "C",
                    "partner": "p",
                    "status": "vip",
                    "contacts": {"primary": {"name": "A", "email": "a@c.com"}},
                }
            )

    def test_primary_contact_required(self):
        with pytest.raises(ConfigurationError):
            parse_client({"id": "c", "name": "C", "partner": "p", "contacts": {}})

    def test_bad_amounts(self):
        with pytest.raises(ConfigurationError):
            parse_category({"id": "x", "name": "X", "budget": "lots"})
        with pytest.raises(ConfigurationError):
            parse_category({"id": "x", "name": "X", "budget": -5})


class TestReferenceDataValidation:
    """Tests for ReferenceData invariants."""

    def test_duplicate_ids(self):
        partner = Partner(id="p", name="P", email="p@firm.com")

        with pytest.raises(ConfigurationError):
            ReferenceData(partners=(partner, partner), clients=(), categories=())

    def test_non_positive_budget(self):
        category = parse_category({"id": "x", "name": "X", "budget": 0})

        with pytest.raises(ConfigurationError):
            ReferenceData(partners=(), clients=(), categories=(category,))
