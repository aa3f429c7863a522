from typing import Any, List, Literal

from pydantic import BaseModel, Field


Priority = Literal["high", "medium", "low"]


class SearchResult(BaseModel):
    title: str = ""
    link: str
    snippet: str = ""


class Page(BaseModel):
    title: str = ""
    url: str
    text: str = ""


class MicroTask(BaseModel):
    id: int = Field(ge=1)
    text: str = Field(min_length=1)
    estimatedTime: int = Field(ge=10, le=180)
    priority: Priority = "medium"
    dependsOn: List[Any] = Field(default_factory=list)


class Source(BaseModel):
    title: str = ""
    url: str


class BreakdownMeta(BaseModel):
    usedWebResearch: bool = False


class BreakdownResponse(BaseModel):
    breakdown: List[MicroTask] = Field(default_factory=list)
    sources: List[Source] = Field(default_factory=list)
    meta: BreakdownMeta = Field(default_factory=BreakdownMeta)
