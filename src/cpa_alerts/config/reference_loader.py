"""Load and validate static reference data (partners, clients, expense categories)."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from cpa_alerts.errors import ConfigurationError
from cpa_alerts.models import (
    Client,
    ClientContacts,
    ClientStatus,
    Contact,
    DriverTemplate,
    ExpenseCategory,
    Partner,
)

REFERENCE_DIR = Path(__file__).resolve().parent / "reference"


@dataclass(frozen=True)
class ReferenceData:
    """Read-only lookup tables consumed by the alert generators.

    Validation happens here, at construction time, so derivation code can
    trust every lookup it makes. Empty tables are allowed (generators then
    return no alerts); the YAML loader rejects them.
    """

    partners: tuple[Partner, ...]
    clients: tuple[Client, ...]
    categories: tuple[ExpenseCategory, ...]

    def __post_init__(self) -> None:
        for label, ids in (
            ("partner", [p.id for p in self.partners]),
            ("client", [c.id for c in self.clients]),
            ("category", [c.id for c in self.categories]),
        ):
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            if duplicates:
                raise ConfigurationError(
                    f"Duplicate {label} ids: {', '.join(duplicates)}", details=duplicates
                )

        partner_ids = {p.id for p in self.partners}
        for client in self.clients:
            if client.partner_id not in partner_ids:
                raise ConfigurationError(
                    f"Client {client.id} references unknown partner {client.partner_id}"
                )

        for category in self.categories:
            if category.budget_amount <= 0:
                raise ConfigurationError(
                    f"Category {category.id} must have a positive budget"
                )
            for driver in category.drivers:
                if driver.base_amount < 0:
                    raise ConfigurationError(
                        f"Category {category.id} driver {driver.name!r} has a negative amount"
                    )

    def client(self, client_id: str) -> Client | None:
        return next((c for c in self.clients if c.id == client_id), None)

    def client_index(self, client_id: str) -> int:
        """Position of the client in the table (drives invoice numbering)."""
        for index, client in enumerate(self.clients):
            if client.id == client_id:
                return index
        return -1

    def partner_for(self, client: Client) -> Partner:
        return next(p for p in self.partners if p.id == client.partner_id)

    def category(self, category_id: str) -> ExpenseCategory | None:
        return next((c for c in self.categories if c.id == category_id), None)


def _read_section(path: Path, key: str) -> list[dict[str, Any]]:
    if not path.exists():
        raise ConfigurationError(f"Missing reference file: {path.name}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    section = data.get(key)
    if not isinstance(section, list):
        raise ConfigurationError(f"{path.name}: {key} must be a list")
    for idx, item in enumerate(section):
        if not isinstance(item, dict):
            raise ConfigurationError(f"{path.name}: {key}[{idx}] must be a mapping")
    return section


def _amount(value: Any, where: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(f"{where}: invalid amount {value!r}") from exc
    if amount < 0:
        raise ConfigurationError(f"{where}: negative amount {value!r}")
    return amount


def _contact(raw: Any, where: str, is_primary: bool = False) -> Contact | None:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not raw.get("name") or not raw.get("email"):
        raise ConfigurationError(f"{where}: contact needs a name and email")
    return Contact(
        name=str(raw["name"]),
        email=str(raw["email"]),
        phone=str(raw.get("phone", "")),
        role=str(raw.get("role", "")),
        is_primary=is_primary,
    )


def parse_partner(raw: dict[str, Any], where: str = "partner") -> Partner:
    if not raw.get("id") or not raw.get("name"):
        raise ConfigurationError(f"{where}: missing id/name")
    return Partner(id=str(raw["id"]), name=str(raw["name"]), email=str(raw.get("email", "")))


def parse_client(raw: dict[str, Any], where: str = "client") -> Client:
    """Build a Client from its YAML mapping."""
    for required in ("id", "name", "partner"):
        if not raw.get(required):
            raise ConfigurationError(f"{where}: missing {required}")

    try:
        status = ClientStatus(raw.get("status", ClientStatus.NORMAL.value))
    except ValueError as exc:
        raise ConfigurationError(
            f"{where}: unknown automation status {raw.get('status')!r}"
        ) from exc

    contacts_raw = raw.get("contacts") or {}
    primary = _contact(contacts_raw.get("primary"), f"{where}.primary", is_primary=True)
    if primary is None:
        raise ConfigurationError(f"{where}: a primary contact is required")

    return Client(
        id=str(raw["id"]),
        name=str(raw["name"]),
        industry=str(raw.get("industry", "")),
        partner_id=str(raw["partner"]),
        automation_status=status,
        contacts=ClientContacts(
            primary=primary,
            escalation=_contact(contacts_raw.get("escalation"), f"{where}.escalation"),
            owner=_contact(contacts_raw.get("owner"), f"{where}.owner"),
        ),
    )


def parse_category(raw: dict[str, Any], where: str = "category") -> ExpenseCategory:
    """Build an ExpenseCategory from its YAML mapping."""
    if not raw.get("id") or not raw.get("name") or raw.get("budget") is None:
        raise ConfigurationError(f"{where}: missing id/name/budget")

    drivers = []
    for idx, item in enumerate(raw.get("drivers") or []):
        if not isinstance(item, dict) or not item.get("name"):
            raise ConfigurationError(f"{where}.drivers[{idx}] must be a mapping with a name")
        drivers.append(
            DriverTemplate(
                name=str(item["name"]),
                vendor=str(item.get("vendor", "")),
                base_amount=_amount(item.get("base_amount", 0), f"{where}.drivers[{idx}]"),
            )
        )

    return ExpenseCategory(
        id=str(raw["id"]),
        name=str(raw["name"]),
        budget_amount=_amount(raw["budget"], where),
        drivers=tuple(drivers),
        note=str(raw.get("note", "")),
    )


@lru_cache
def load_reference_data(directory: Path = REFERENCE_DIR) -> ReferenceData:
    """Load reference tables from YAML files in ``directory``.

    Raises:
        ConfigurationError: If a file is missing or any record is malformed.
    """
    partners = tuple(
        parse_partner(raw, f"partners[{idx}]")
        for idx, raw in enumerate(_read_section(directory / "partners.yaml", "partners"))
    )
    clients = tuple(
        parse_client(raw, f"clients[{idx}]")
        for idx, raw in enumerate(_read_section(directory / "clients.yaml", "clients"))
    )
    categories = tuple(
        parse_category(raw, f"categories[{idx}]")
        for idx, raw in enumerate(
            _read_section(directory / "expense_categories.yaml", "categories")
        )
    )
    if not clients:
        raise ConfigurationError("Reference data has no clients")
    if not categories:
        raise ConfigurationError("Reference data has no expense categories")
    return ReferenceData(partners=partners, clients=clients, categories=categories)
