from supabase import Client

from alertflow.models.alert_model import Alert as AlertModel
from alertflow.repositories.supabase_repo import SupabaseRepository


class AlertRepository(SupabaseRepository[AlertModel]):
    """Repositorio para manejar operaciones de Alert en Supabase."""

    model = AlertModel

    def __init__(self, supabase: Client):
        super().__init__(supabase)
        self.table_name = "alerts"
