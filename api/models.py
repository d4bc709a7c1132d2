"""Pydantic schemas for the safety API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health response summarising server readiness."""

    ok: bool = Field(True, description="Indicates the API server is reachable.")
    version: str = Field(..., description="Application version string.")
    time_utc: str = Field(..., description="Current UTC timestamp in ISO8601 format.")
    safety_level: str = Field(..., description="Default safety level from settings.")
    pending_operations: int = Field(..., ge=0, description="Journal records still Pending.")


class WorkflowRequest(BaseModel):
    """Batch of destructive operations to run through the safety workflow."""

    op_type: str = Field(..., description="file_delete, file_modify, package_remove, service_stop or directory_create.")
    targets: List[str] = Field(..., description="Paths, unit names or package names.")
    description: str = Field("", description="Free-text reason recorded on every operation.")
    safety_level: Optional[str] = Field(None, description="conservative, standard or aggressive.")
    confirm: bool = Field(
        False,
        description="Answer given to every confirmation the level asks for; the API never prompts.",
    )
    dry_run: bool = Field(False, description="Validate and run checks only.")
    content: Optional[str] = Field(None, description="New file content for file_modify batches.")
    level_overrides: Optional[Dict[str, Any]] = Field(
        None, description="Per-run overrides of safety level fields."
    )


class VerdictModel(BaseModel):
    target: str
    kind: str
    reason: str = ""
    critical: bool = False
    overridden: bool = False
    allow_matched: bool = False
    rule: Optional[Dict[str, Any]] = None


class CheckItemModel(BaseModel):
    code: str
    severity: str
    message: str
    where: str
    hint: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class TargetResultModel(BaseModel):
    target: str
    operation_id: Optional[str] = None
    outcome: str
    reason: str = ""
    backup_ref: Optional[str] = None


class BatchCounts(BaseModel):
    succeeded: int
    failed: int
    skipped: int


class BatchResultResponse(BaseModel):
    """Aggregated outcome of one workflow run."""

    batch_id: str
    op_type: str
    description: str
    level: str
    state: str
    classification: str = Field(..., description="success, partial_failure, total_failure or blocked.")
    exit_code: int = Field(..., description="0 success, 1 blocked or total failure, 2 partial failure.")
    dry_run: bool
    reason: str = ""
    counts: BatchCounts
    results: List[TargetResultModel]
    verdicts: List[VerdictModel]
    warnings: List[CheckItemModel]


class OperationModel(BaseModel):
    id: str
    type: str
    target: str
    description: str
    status: str
    backup_ref: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class OperationsResponse(BaseModel):
    limit: int = Field(..., description="Maximum number of records requested.")
    operations: List[OperationModel] = Field(..., description="Most recent first.")


class UndoStepModel(BaseModel):
    name: str
    ok: bool
    detail: str = ""
    error: Optional[Dict[str, Any]] = None


class UndoResponse(BaseModel):
    operation_id: str
    status: str = Field(..., description="undone, already_undone or failed.")
    ok: bool
    steps: List[UndoStepModel]


class BackupRetentionModel(BaseModel):
    removed: List[str]
    kept: List[str]
    freed_bytes: int


class RetentionResponse(BaseModel):
    journal_removed: List[str]
    backups: BackupRetentionModel


class RuleModel(BaseModel):
    scope: str
    pattern: str
    tier: str
    effect: str
    description: str = ""


class RulesResponse(BaseModel):
    rules: List[RuleModel]
    problems: List[str] = Field(default_factory=list, description="Malformed entries that were ignored.")


__all__ = [
    "BatchResultResponse",
    "CheckItemModel",
    "HealthResponse",
    "OperationModel",
    "OperationsResponse",
    "RetentionResponse",
    "RuleModel",
    "RulesResponse",
    "TargetResultModel",
    "UndoResponse",
    "VerdictModel",
    "WorkflowRequest",
]
