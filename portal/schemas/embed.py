from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class EmbedOut(BaseModel):
    """
    `status == "ready"`: render `url` (with `token` for Power BI).
    `status == "needs_configuration"`: show `reason` to the user.
    """

    report_id: int
    status: Literal["ready", "needs_configuration"]

    report_type: str | None = None
    kind: str | None = None
    url: str | None = None
    token: str | None = None
    token_expires_at: datetime | None = None
    parameters: dict[str, str] = Field(default_factory=dict)

    reason: str | None = None
    informational: bool = False
