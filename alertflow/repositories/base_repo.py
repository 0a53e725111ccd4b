from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, Sequence, TypeVar

T = TypeVar("T")


class BaseRepository(ABC, Generic[T]):
    @abstractmethod
    def get_by_id(self, tenant_id: str, entity_id: str) -> Optional[T]:
        """Obtiene una entidad por su ID dentro del tenant."""
        pass

    @abstractmethod
    def persist(self, entity: T) -> T:
        """Inserta una entidad nueva; el store asigna id y timestamps."""
        pass

    @abstractmethod
    def conditional_update(
        self,
        tenant_id: str,
        entity_id: str,
        expected_statuses: Sequence[str],
        patch: Dict[str, Any],
        expected_owner: Optional[str] = None,
    ) -> Optional[T]:
        """
        Aplica `patch` solo si el status guardado sigue en `expected_statuses`
        (y el dueño coincide, si se indica) en el momento de escribir.

        Returns:
            La entidad actualizada, o None si no se afectó ninguna fila.
        """
        pass
