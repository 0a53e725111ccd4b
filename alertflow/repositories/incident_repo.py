from supabase import Client

from alertflow.models.incident_model import Incident as IncidentModel
from alertflow.repositories.supabase_repo import SupabaseRepository


class IncidentRepository(SupabaseRepository[IncidentModel]):
    """
    Repositorio de Incident en Supabase.

    La tabla tiene UNIQUE(linked_alert_id): un segundo insert para la misma
    alerta termina en ConflictError.
    """

    model = IncidentModel

    def __init__(self, supabase: Client):
        super().__init__(supabase)
        self.table_name = "incidents"
