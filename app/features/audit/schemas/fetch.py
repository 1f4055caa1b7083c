from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FetchResponse(BaseModel):
    """What the HTML fetch collaborator hands back for one request."""
    status: int
    body: str = ""
    final_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class FetchedPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    html: str


class FetchFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    reason: str
    attempts: int = 1
    abandoned: bool = False


class FetchBatchResult(BaseModel):
    succeeded: List[FetchedPage] = Field(default_factory=list)
    failed: List[FetchFailure] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def html_by_url(self) -> dict:
        return {page.url: page.html for page in self.succeeded}
