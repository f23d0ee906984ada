from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime


class MovementKind(str, enum.Enum):
    entrada = "entrada"
    saida = "saida"
    ajuste = "ajuste"


class ManifestType(str, enum.Enum):
    entrada = "entrada"
    retirada = "retirada"
    transferencia = "transferencia"
    devolucao = "devolucao"


class ManifestStatus(str, enum.Enum):
    pendente = "pendente"
    aprovado = "aprovado"
    retirado = "retirado"
    devolvido = "devolvido"
    cancelado = "cancelado"


class ReconciliationStatus(str, enum.Enum):
    pendente = "pendente"
    parcial = "parcial"
    totalmente_devolvido = "totalmente_devolvido"


# Retiradas ainda "abertas" para devolução
RETURNABLE_STATUSES = {
    ManifestStatus.aprovado,
    ManifestStatus.retirado,
}

# Devolução em andamento contra uma retirada
IN_FLIGHT_RETURN_STATUSES = {
    ManifestStatus.pendente,
    ManifestStatus.aprovado,
}

# Tipos que transferem a posse do item para o centro de custo de destino
OWNERSHIP_TYPES = {
    ManifestType.retirada,
    ManifestType.transferencia,
    ManifestType.devolucao,
}


# ---------- ESTADO DE DEVOLUÇÃO DE UMA LINHA ----------
@dataclass(frozen=True)
class Outstanding:
    """Linha ainda em posse de quem retirou."""

    @property
    def is_returned(self) -> bool:
        return False


@dataclass(frozen=True)
class Returned:
    at: datetime

    @property
    def is_returned(self) -> bool:
        return True


ReturnState = Outstanding | Returned
