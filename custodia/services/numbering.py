"""
Numeração de romaneios.

Formato: PPP-AL-<CODIGO_CC>-<AAAA>-<SSSS>

    PPP       RDV para devolução, ROM para os demais tipos
    AL        almoxarifado
    CODIGO_CC código JÁ cadastrado do centro de custo
              - devolução: centro de custo de ORIGEM
              - demais:    centro de custo de DESTINO
    AAAA      ano de emissão
    SSSS      sequencial (4 dígitos mínimo) por (PPP, CODIGO_CC, AAAA)

O sequencial vem de uma linha de contador travada (FOR UPDATE) dentro de
um SAVEPOINT. Se o contador falhar, cai para um número derivado do
relógio (AAAAMMDDhhmmss), com sufixo -N se já existir.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from custodia.app.db.models.models_v1 import CostCenter, Manifest, ManifestCounter, utcnow
from custodia.app.db.models.core_types import ManifestType

logger = logging.getLogger(__name__)

WAREHOUSE_TAG = "AL"
SEQUENCE_WIDTH = 4
COUNTER_ATTEMPTS = 3

NUMBER_PATTERN = re.compile(r"^(ROM|RDV)-AL-(.+)-(\d{4})-(\d{4,})$")


class NumberingUnavailable(Exception):
    pass


@dataclass(frozen=True)
class ManifestNumber:
    prefix: str
    cost_center_code: str
    year: int
    sequence: int

    def __str__(self) -> str:
        return f"{self.prefix}-{WAREHOUSE_TAG}-{self.cost_center_code}-{self.year}-{self.sequence:0{SEQUENCE_WIDTH}d}"


def prefix_for(manifest_type: ManifestType) -> str:
    return "RDV" if manifest_type == ManifestType.devolucao else "ROM"


def is_valid_manifest_number(number: str) -> bool:
    return bool(NUMBER_PATTERN.match(number or ""))


def parse_manifest_number(number: str) -> ManifestNumber | None:
    match = NUMBER_PATTERN.match(number or "")
    if not match:
        return None
    prefix, code, year, seq = match.groups()
    return ManifestNumber(prefix=prefix, cost_center_code=code, year=int(year), sequence=int(seq))


def _naming_cost_center_code(
    db: Session,
    manifest_type: ManifestType,
    origin_cost_center_id: int | None,
    dest_cost_center_id: int | None,
) -> str:
    if manifest_type == ManifestType.devolucao:
        cc_id = origin_cost_center_id
        missing = "Centro de custo de origem é obrigatório para devoluções"
    else:
        cc_id = dest_cost_center_id
        missing = "Centro de custo de destino é obrigatório para retiradas/entradas"

    if cc_id is None:
        raise NumberingUnavailable(missing)

    cc = db.get(CostCenter, cc_id)
    if not cc:
        raise NumberingUnavailable(f"Centro de custo não encontrado: {cc_id}")
    if not (cc.code or "").strip():
        raise NumberingUnavailable(f"Centro de custo sem código definido: {cc_id}")
    return cc.code.strip()


def _highest_existing_sequence(db: Session, prefix: str, code: str, year: int) -> int:
    """Maior sequencial já usado neste escopo (semente do contador)."""
    like = f"{prefix}-{WAREHOUSE_TAG}-{code}-{year}-%"
    numbers = db.execute(select(Manifest.number).where(Manifest.number.like(like))).scalars().all()

    highest = 0
    for number in numbers:
        parsed = parse_manifest_number(number)
        if parsed and parsed.cost_center_code == code and parsed.year == year:
            highest = max(highest, parsed.sequence)
    return highest


def _increment_counter(db: Session, prefix: str, code: str, year: int) -> int:
    for attempt in range(1, COUNTER_ATTEMPTS + 1):
        try:
            with db.begin_nested():
                counter = (
                    db.execute(
                        select(ManifestCounter)
                        .where(ManifestCounter.prefix == prefix)
                        .where(ManifestCounter.cost_center_code == code)
                        .where(ManifestCounter.year == year)
                        .with_for_update()
                    )
                    .scalar_one_or_none()
                )
                if not counter:
                    counter = ManifestCounter(
                        prefix=prefix,
                        cost_center_code=code,
                        year=year,
                        last_value=_highest_existing_sequence(db, prefix, code, year),
                    )
                    db.add(counter)
                    db.flush()

                counter.last_value += 1
                db.flush()
                return int(counter.last_value)
        except IntegrityError:
            # Outra transação criou o contador ao mesmo tempo, relê
            logger.info("Contador %s/%s/%s criado em paralelo (tentativa %s)", prefix, code, year, attempt)
            continue

    raise NumberingUnavailable(f"Contador {prefix}/{code}/{year} indisponível")


def _fallback_number(db: Session, now: datetime) -> str:
    base = now.strftime("%Y%m%d%H%M%S")
    candidate = base
    suffix = 1
    while db.execute(select(Manifest.id).where(Manifest.number == candidate)).first():
        suffix += 1
        candidate = f"{base}-{suffix}"
    return candidate


def next_manifest_number(
    db: Session,
    *,
    manifest_type: ManifestType,
    origin_cost_center_id: int | None = None,
    dest_cost_center_id: int | None = None,
    issue_date: date | None = None,
) -> str:
    """Próximo número do romaneio. Nunca falha: cai para o número por relógio."""
    now = utcnow()
    year = (issue_date or now.date()).year
    prefix = prefix_for(manifest_type)

    try:
        code = _naming_cost_center_code(db, manifest_type, origin_cost_center_id, dest_cost_center_id)
        sequence = _increment_counter(db, prefix, code, year)
    except (NumberingUnavailable, SQLAlchemyError) as e:
        fallback = _fallback_number(db, now)
        logger.warning("Numeração sequencial indisponível (%s); usando %s", e, fallback)
        return fallback

    return str(ManifestNumber(prefix=prefix, cost_center_code=code, year=year, sequence=sequence))
