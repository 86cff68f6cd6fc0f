from typing import List, Optional
from pydantic import BaseModel, Field


class SearchResult(BaseModel):
    url: str
    title: str = ""
    content: Optional[str] = None
    raw_content: Optional[str] = None
    score: Optional[float] = None


class SearchResponse(BaseModel):
    query: str
    answer: Optional[str] = None
    results: List[SearchResult] = Field(default_factory=list)
