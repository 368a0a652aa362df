from typing import Any, Dict, List
from pydantic import BaseModel

class SearchResult(BaseModel):
    id: int
    content: Dict[str, Any]
    score: float

class SearchResponse(BaseModel):
    query: str
    results: List[SearchResult]

class VectorizeResponse(BaseModel):
    message: str
