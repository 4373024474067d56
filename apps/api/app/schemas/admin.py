"""Administrative operation schemas."""

from pydantic import BaseModel


class CleanupSummary(BaseModel):
    processed: int
    deleted: int
    errors: int
