from typing import Optional

from pydantic import BaseModel, Field

from strategy_agent.state import BusinessProfile, CarryForward, ResearchData, RunInput, UserHistoryContext


class StrategyRequest(BaseModel):
    runId: str = Field(..., min_length=1)
    userId: Optional[str] = None
    input: RunInput
    userHistory: Optional[UserHistoryContext] = None
    priorContext: Optional[str] = None
    enrich: bool = True


class FreeBriefRequest(BaseModel):
    runId: str = Field(..., min_length=1)
    email: Optional[str] = None
    input: RunInput


class RefinementRequest(BaseModel):
    runId: str = Field(..., min_length=1)
    userId: Optional[str] = None
    input: RunInput
    previousOutput: str = Field(..., min_length=1)
    additionalContext: str = Field(..., min_length=1)


class StrategyContextRequest(BaseModel):
    runId: str = Field(..., min_length=1)
    userId: Optional[str] = None
    businessId: Optional[str] = None
    profile: BusinessProfile
    monthNumber: int = Field(1, ge=1)
    carryForward: Optional[CarryForward] = None
    historicalContext: Optional[str] = None


class ExtractionRequest(BaseModel):
    markdown: str = Field(..., min_length=1)
    researchData: Optional[ResearchData] = None
