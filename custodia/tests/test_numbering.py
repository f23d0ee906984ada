import re
from datetime import date, datetime, timezone

from custodia.app.db.models.models_v1 import Manifest
from custodia.app.db.models.core_types import ManifestType
from custodia.services import numbering
from custodia.services.numbering import (
    is_valid_manifest_number,
    next_manifest_number,
    parse_manifest_number,
)

CLOCK_NUMBER = re.compile(r"^\d{14}(-\d+)?$")


def test_withdrawals_are_numbered_by_destination_cost_center(db_session, catalog, make_manifest):
    first = make_manifest(issue_date=date(2026, 3, 10))
    second = make_manifest(issue_date=date(2026, 3, 11))

    assert first.number == "ROM-AL-OBRA1-2026-0001"
    assert second.number == "ROM-AL-OBRA1-2026-0002"


def test_sequence_is_scoped_by_prefix_cost_center_and_year(db_session, catalog):
    kwargs = dict(manifest_type=ManifestType.entrada, dest_cost_center_id=catalog.oficina.id)

    assert next_manifest_number(db_session, issue_date=date(2026, 1, 5), **kwargs) == "ROM-AL-OFICINA-2026-0001"
    assert next_manifest_number(db_session, issue_date=date(2027, 1, 5), **kwargs) == "ROM-AL-OFICINA-2027-0001"

    ret = next_manifest_number(
        db_session,
        manifest_type=ManifestType.devolucao,
        origin_cost_center_id=catalog.oficina.id,
        issue_date=date(2026, 1, 5),
    )
    assert ret == "RDV-AL-OFICINA-2026-0001"


def test_counter_is_seeded_from_existing_numbers(db_session, catalog):
    """
    DADO
    - um romaneio legado ROM-AL-OFICINA-2026-0041 e nenhum contador

    ENTÃO
    - o próximo número do escopo é 0042
    """
    db_session.add(
        Manifest(
            number="ROM-AL-OFICINA-2026-0041",
            type=ManifestType.entrada,
            dest_cost_center_id=catalog.oficina.id,
            issue_date=date(2026, 2, 1),
        )
    )
    db_session.commit()

    number = next_manifest_number(
        db_session,
        manifest_type=ManifestType.entrada,
        dest_cost_center_id=catalog.oficina.id,
        issue_date=date(2026, 5, 1),
    )
    assert number == "ROM-AL-OFICINA-2026-0042"


def test_missing_naming_cost_center_falls_back_to_clock_number(db_session, catalog):
    number = next_manifest_number(db_session, manifest_type=ManifestType.retirada, dest_cost_center_id=None)

    assert CLOCK_NUMBER.match(number)
    assert not is_valid_manifest_number(number)


def test_clock_fallback_adds_suffix_when_taken(db_session, catalog, monkeypatch):
    fixed = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
    monkeypatch.setattr(numbering, "utcnow", lambda: fixed)

    db_session.add(
        Manifest(
            number="20260301120000",
            type=ManifestType.entrada,
            issue_date=date(2026, 3, 1),
        )
    )
    db_session.commit()

    number = next_manifest_number(db_session, manifest_type=ManifestType.entrada)
    assert number == "20260301120000-2"


def test_parse_and_validate_manifest_numbers():
    parsed = parse_manifest_number("RDV-AL-OBRA-NORTE-2026-0107")

    assert parsed.prefix == "RDV"
    assert parsed.cost_center_code == "OBRA-NORTE"
    assert parsed.year == 2026
    assert parsed.sequence == 107
    assert str(parsed) == "RDV-AL-OBRA-NORTE-2026-0107"

    assert is_valid_manifest_number("ROM-AL-OBRA1-2026-0001")
    assert not is_valid_manifest_number("XYZ-AL-OBRA1-2026-0001")
    assert parse_manifest_number("20260301120000") is None
