"""
Erros do motor de romaneios.

Toda exceção carrega uma mensagem legível e, quando faz sentido, uma lista
de detalhes por linha (item, quantidade pedida, disponível...) para a UI
exibir os problemas linha a linha.
"""

from __future__ import annotations

from typing import Any


class CustodyError(Exception):
    code = "custody_error"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def as_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "errors": self.details}


class NotFound(CustodyError):
    code = "not_found"


class ValidationError(CustodyError):
    """Entrada rejeitada antes de qualquer escrita."""

    code = "validation_error"


class InsufficientStock(CustodyError):
    code = "insufficient_stock"


class StaleManifestState(CustodyError):
    code = "stale_manifest_state"

    def __init__(self, message: str, *, current_status: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.current_status = current_status

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        data["status"] = self.current_status
        return data


class DuplicateReturnInFlight(CustodyError):
    code = "duplicate_return_in_flight"

    def __init__(self, message: str, *, open_return_id: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.open_return_id = open_return_id

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        data["open_return_id"] = self.open_return_id
        return data


class ReversalPartialFailure(CustodyError):
    """Estorno de um item falhou durante a exclusão (vira aviso, não erro)."""

    code = "reversal_partial_failure"

    def __init__(self, message: str, *, item_id: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.item_id = item_id
