from splitflap.storage.postgres import PostgresContentRepository
from splitflap.storage.records import ContentRecord, RecordStatus

__all__ = ["ContentRecord", "PostgresContentRepository", "RecordStatus"]
