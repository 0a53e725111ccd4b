from supabase import Client

from alertflow.models.audit_model import AuditEntry


class AuditRepository:
    """Repositorio append-only para el trail de auditoría."""

    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.table_name = "audit_logs"

    def append(self, entry: AuditEntry) -> None:
        data = entry.model_dump(mode="json", exclude_none=True)
        self.supabase.table(self.table_name).insert(data).execute()
