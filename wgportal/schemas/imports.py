"""Schemas for peer config import."""
from pydantic import BaseModel


class ImportResultResponse(BaseModel):
    """Result of one import run."""
    files_imported: int
    batch_id: str
    skipped: int
