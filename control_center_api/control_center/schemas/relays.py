from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"] = Field(...)
    content: str = Field(...)


class AIChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    site_id: Optional[UUID] = Field(None, alias="siteId")
    mode: Literal["chat", "modify"] = Field("chat")

    class Config:
        populate_by_name = True


class AIChatResponse(BaseModel):
    response: str = Field(..., description="Assistant reply")


class SlackField(BaseModel):
    name: str = Field(...)
    value: str = Field(...)


class SlackNotification(BaseModel):
    """Required fields are checked by the relay so the 400 carries its message."""
    type: Literal["alert", "info", "success", "warning"] = Field("info")
    title: Optional[str] = Field(None)
    message: Optional[str] = Field(None)
    severity: Literal["low", "medium", "high", "critical"] = Field("low")
    fields: List[SlackField] = Field(default_factory=list)
    test_mode: bool = Field(False, alias="testMode")

    class Config:
        populate_by_name = True


class EmailRequest(BaseModel):
    to: Optional[Union[str, List[str]]] = Field(None)
    subject: Optional[str] = Field(None)
    html: Optional[str] = Field(None)
    sender: Optional[str] = Field(None, alias="from")
    text: Optional[str] = Field(None)
    test_mode: bool = Field(False, alias="testMode")

    class Config:
        populate_by_name = True


class RelayResult(BaseModel):
    """Outcome of a Slack or email relay call."""
    success: bool = Field(True)
    message: str = Field(...)
    test_mode: Optional[bool] = Field(None, alias="testMode")
    recipients: Optional[int] = Field(None)

    class Config:
        populate_by_name = True


class GitHubDepsRequest(BaseModel):
    github_url: Optional[str] = Field(None, alias="githubUrl")
    owner: Optional[str] = Field(None)
    repo: Optional[str] = Field(None)

    class Config:
        populate_by_name = True


class MatchedPackage(BaseModel):
    package: str = Field(...)
    integration: str = Field(...)


class GitHubDepsResult(BaseModel):
    success: bool = Field(True)
    repo_owner: str = Field(...)
    repo_name: str = Field(...)
    project_name: str = Field(...)
    detected_integrations: List[str] = Field(default_factory=list)
    matched_packages: List[MatchedPackage] = Field(default_factory=list)
    total_dependencies: int = Field(0)


class RelayErrorBody(BaseModel):
    """Error payload returned by relays; mirrors what the upstream failure looked like."""
    success: bool = Field(False)
    error: str = Field(...)
    code: Optional[str] = Field(None)
    hint: Optional[str] = Field(None)
    details: Optional[Any] = Field(None)

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


RepoOutcome = Literal["success", "failed", "skipped"]


class RunSummary(BaseModel):
    total: int = Field(0)
    success: int = Field(0)
    failed: int = Field(0)
    skipped: int = Field(0)


class VisibilityRequest(BaseModel):
    """scan reports current visibility; remediate switches every public repository to private."""
    action: str = Field("scan", description="scan or remediate")


class RepoVisibilityEntry(BaseModel):
    site_id: UUID = Field(..., alias="siteId")
    site_name: str = Field(..., alias="siteName")
    repo_name: Optional[str] = Field(None, alias="repoName")
    repo_owner: Optional[str] = Field(None, alias="repoOwner")
    current_visibility: str = Field("unknown", alias="currentVisibility")
    new_visibility: str = Field("private", alias="newVisibility")
    status: RepoOutcome = Field(...)
    message: str = Field(...)

    class Config:
        populate_by_name = True


class FinalAcceptance(BaseModel):
    all_private: bool = Field(..., alias="allPrivate")
    residual_risks: List[str] = Field(default_factory=list, alias="residualRisks")
    conclusion: str = Field(...)

    class Config:
        populate_by_name = True


class ExecutionLogEntry(BaseModel):
    timestamp: datetime = Field(...)
    action: str = Field(...)
    result: str = Field(...)


class VisibilityReport(BaseModel):
    action: str = Field(...)
    timestamp: datetime = Field(...)
    inventory: List[RepoVisibilityEntry] = Field(default_factory=list)
    execution_log: List[ExecutionLogEntry] = Field(default_factory=list, alias="executionLog")
    summary: RunSummary = Field(default_factory=RunSummary)
    final_acceptance: FinalAcceptance = Field(..., alias="finalAcceptance")

    class Config:
        populate_by_name = True


class FileChange(BaseModel):
    path: str = Field(..., min_length=1)
    content: str = Field(...)
    encoding: Literal["utf-8", "base64"] = Field("utf-8")


class SitePush(BaseModel):
    site_id: UUID = Field(..., alias="siteId")
    site_name: str = Field(..., alias="siteName")
    repo_owner: Optional[str] = Field(None, alias="repoOwner")
    repo_name: Optional[str] = Field(None, alias="repoName")
    branch: Optional[str] = Field(None)
    commit_message: str = Field(..., alias="commitMessage", min_length=1)
    changes: List[FileChange] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class PushRequest(BaseModel):
    sites: List[SitePush] = Field(default_factory=list)


class PushResult(BaseModel):
    site_id: UUID = Field(..., alias="siteId")
    site_name: str = Field(..., alias="siteName")
    status: RepoOutcome = Field(...)
    commit_sha: Optional[str] = Field(None, alias="commitSha")
    commit_url: Optional[str] = Field(None, alias="commitUrl")
    message: str = Field(...)

    class Config:
        populate_by_name = True


class PushReport(BaseModel):
    results: List[PushResult] = Field(default_factory=list)
    summary: RunSummary = Field(default_factory=RunSummary)
