import logging
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Sequence, Type, TypeVar

import httpx
from postgrest.exceptions import APIError
from pydantic import BaseModel
from supabase import Client

from alertflow.core.errors import ConflictError, DependencyUnavailableError
from alertflow.repositories.base_repo import BaseRepository

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Código de Postgres para violación de UNIQUE
UNIQUE_VIOLATION = "23505"
# Texto que no se puede convertir al tipo de la columna (p. ej. un uuid mal formado)
INVALID_TEXT_REPRESENTATION = "22P02"


def serialize_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Convierte enums y datetimes a valores JSON para PostgREST."""
    data = {}
    for key, value in patch.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        data[key] = value
    return data


class SupabaseRepository(BaseRepository[M]):
    """
    Repositorio genérico sobre una tabla de Supabase.

    Todas las consultas van filtradas por `tenant_id`; los errores del cliente
    se traducen a DependencyUnavailableError (el store es el sistema de
    registro, así que nunca se silencian).
    """

    table_name: str = ""
    model: Type[M]

    def __init__(self, supabase: Client):
        self.supabase = supabase

    @contextmanager
    def _store_call(self, operation: str) -> Iterator[None]:
        try:
            yield
        except APIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise ConflictError(
                    f"{self.table_name}: duplicate record ({exc.message})"
                ) from exc
            logger.error(
                "Store %s on %s failed: %s", operation, self.table_name, exc.message
            )
            raise DependencyUnavailableError(
                f"{self.table_name} {operation} failed: {exc.message}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error(
                "Store %s on %s unreachable: %s", operation, self.table_name, exc
            )
            raise DependencyUnavailableError(
                f"{self.table_name} {operation} failed: store unreachable"
            ) from exc

    @staticmethod
    def _rows_by_id(query) -> list:
        """Ejecuta una consulta filtrada por id; un id mal formado no encuentra filas."""
        try:
            return query.execute().data
        except APIError as exc:
            if exc.code == INVALID_TEXT_REPRESENTATION:
                return []
            raise

    def persist(self, entity: M) -> M:
        """Inserta la entidad y devuelve la fila con los valores del store."""
        data = entity.model_dump(mode="json", exclude_none=True)
        with self._store_call("insert"):
            response = self.supabase.table(self.table_name).insert(data).execute()
        return self.model(**response.data[0])

    def get_by_id(self, tenant_id: str, entity_id: str) -> Optional[M]:
        with self._store_call("select"):
            rows = self._rows_by_id(
                self.supabase.table(self.table_name)
                .select("*")
                .eq("id", entity_id)
                .eq("tenant_id", tenant_id)
                .limit(1)
            )
        return self.model(**rows[0]) if rows else None

    def conditional_update(
        self,
        tenant_id: str,
        entity_id: str,
        expected_statuses: Sequence[str],
        patch: Dict[str, Any],
        expected_owner: Optional[str] = None,
    ) -> Optional[M]:
        statuses = [
            s.value if isinstance(s, Enum) else s for s in expected_statuses
        ]
        with self._store_call("update"):
            query = (
                self.supabase.table(self.table_name)
                .update(serialize_patch(patch))
                .eq("id", entity_id)
                .eq("tenant_id", tenant_id)
                .in_("status", statuses)
            )
            if expected_owner is not None:
                query = query.eq("owner_id", expected_owner)
            rows = self._rows_by_id(query)

        # Cero filas afectadas: otro escritor ganó o el estado ya no coincide
        if not rows:
            return None
        return self.model(**rows[0])
