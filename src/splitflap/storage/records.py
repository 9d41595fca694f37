from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

RecordStatus = Literal["success", "failed"]


@dataclass(slots=True)
class ContentRecord:
    """One persisted cycle outcome.

    Failed records describe the original generation failure even though
    fallback content was shown in its place.
    """

    text: str
    update_type: str
    generated_at: datetime
    status: RecordStatus = "success"
    sent_at: datetime | None = None
    generator_id: str | None = None
    generator_name: str | None = None
    priority: int | None = None
    provider: str = ""
    model: str | None = None
    model_tier: str | None = None
    tokens_used: int | None = None
    failed_over: bool = False
    primary_provider: str | None = None
    primary_error: str | None = None
    error_type: str | None = None
    error_message: str | None = None
    output_mode: str | None = "text"
    metadata: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
