"""Static directory of official crisis lines and emergency numbers by country."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OfficialContact:
    id: str
    country: str
    name: str
    phone_number: str
    type: str  # crisis_hotline | emergency_services | mental_health_facility
    available_24h: bool
    auto_contact: bool
    description: str = ""
    website: str | None = None


_CONTACTS: tuple[OfficialContact, ...] = (
    OfficialContact(
        id="us-988",
        country="US",
        name="Suicide & Crisis Lifeline",
        phone_number="988",
        type="crisis_hotline",
        available_24h=True,
        auto_contact=True,
        description="National suicide prevention lifeline",
        website="https://988lifeline.org",
    ),
    OfficialContact(
        id="us-911",
        country="US",
        name="Emergency Services",
        phone_number="911",
        type="emergency_services",
        available_24h=True,
        auto_contact=False,
        description="Emergency services for immediate danger",
    ),
    OfficialContact(
        id="mx-saptel",
        country="MX",
        name="SAPTEL",
        phone_number="55 5259 8121",
        type="crisis_hotline",
        available_24h=True,
        auto_contact=True,
        description="Crisis intervention by phone",
        website="https://saptel.org.mx",
    ),
    OfficialContact(
        id="mx-911",
        country="MX",
        name="Servicios de Emergencia",
        phone_number="911",
        type="emergency_services",
        available_24h=True,
        auto_contact=False,
    ),
    OfficialContact(
        id="es-telefono-esperanza",
        country="ES",
        name="Teléfono de la Esperanza",
        phone_number="717 003 717",
        type="crisis_hotline",
        available_24h=True,
        auto_contact=True,
        website="https://telefonodelaesperanza.org",
    ),
    OfficialContact(
        id="es-024",
        country="ES",
        name="Línea 024",
        phone_number="024",
        type="crisis_hotline",
        available_24h=True,
        auto_contact=False,
    ),
    OfficialContact(
        id="es-112",
        country="ES",
        name="Emergencias",
        phone_number="112",
        type="emergency_services",
        available_24h=True,
        auto_contact=False,
    ),
    OfficialContact(
        id="ar-cas",
        country="AR",
        name="Centro de Asistencia al Suicida",
        phone_number="135",
        type="crisis_hotline",
        available_24h=True,
        auto_contact=True,
    ),
    OfficialContact(
        id="ar-911",
        country="AR",
        name="Emergencias",
        phone_number="911",
        type="emergency_services",
        available_24h=True,
        auto_contact=False,
    ),
    OfficialContact(
        id="co-linea-106",
        country="CO",
        name="Línea 106",
        phone_number="106",
        type="crisis_hotline",
        available_24h=True,
        auto_contact=True,
    ),
    OfficialContact(
        id="co-123",
        country="CO",
        name="Línea de Emergencias",
        phone_number="123",
        type="emergency_services",
        available_24h=True,
        auto_contact=False,
    ),
    OfficialContact(
        id="gb-samaritans",
        country="GB",
        name="Samaritans",
        phone_number="116 123",
        type="crisis_hotline",
        available_24h=True,
        auto_contact=True,
        website="https://www.samaritans.org",
    ),
    OfficialContact(
        id="gb-999",
        country="GB",
        name="Emergency Services",
        phone_number="999",
        type="emergency_services",
        available_24h=True,
        auto_contact=False,
    ),
)


def get_contacts_by_country(country: str | None) -> list[OfficialContact]:
    """Official contacts for an ISO alpha-2 country code. Unknown country -> []."""
    if not country:
        return []
    code = country.strip().upper()
    return [c for c in _CONTACTS if c.country == code]


def get_auto_contacts(country: str | None) -> list[OfficialContact]:
    """Contacts that are notified automatically when a panic alert is raised."""
    return [c for c in get_contacts_by_country(country) if c.auto_contact]
