from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class DocumentCreatedEvent(BaseModel):
    data: Optional[Dict[str, Any]] = Field(None, description="Snapshot of the created document")


class DocumentChangeEvent(BaseModel):
    # null means the document did not exist on that side of the change
    before: Optional[Dict[str, Any]] = Field(None, description="Snapshot before the write")
    after: Optional[Dict[str, Any]] = Field(None, description="Snapshot after the write")

    @property
    def before_exists(self) -> bool:
        return self.before is not None

    @property
    def after_exists(self) -> bool:
        return self.after is not None
