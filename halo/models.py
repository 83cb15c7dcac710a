from typing import List, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None
    hint: Optional[str] = None
    service: Optional[str] = None
    stack: Optional[str] = None

    def body(self) -> dict:
        return self.model_dump(exclude_none=True)


class EngineInfo(BaseModel):
    name: str
    prefix: str


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    engines: List[EngineInfo]


class IndexResponse(BaseModel):
    service: str
    engines: List[EngineInfo]
    unimplemented: List[str]
    usage: str
