from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from control_center.db.enums import ScanType, Severity


class ScanFinding(BaseModel):
    """Result of one failed (or crashed) check."""
    check: str = Field(..., description="Check id")
    name: str = Field("", description="Human readable check name")
    severity: Severity = Field(...)
    message: str = Field(...)
    count: int = Field(0, description="Rows affected")


class ScanResult(BaseModel):
    """Summary returned after a scan run."""
    success: bool = Field(True)
    scan_id: UUID = Field(...)
    scan_type: ScanType = Field(...)
    findings_count: int = Field(0)
    severity_counts: Dict[str, int] = Field(default_factory=dict)
    findings: List[ScanFinding] = Field(default_factory=list)


class SecurityScanRead(BaseModel):
    id: UUID = Field(...)
    scan_type: ScanType = Field(...)
    status: str = Field(...)
    findings: List[ScanFinding] = Field(default_factory=list)
    severity_counts: Dict[str, int] = Field(default_factory=dict)
    started_at: datetime = Field(...)
    completed_at: Optional[datetime] = Field(None)

    class Config:
        from_attributes = True
