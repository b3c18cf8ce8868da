from pydantic import BaseModel, Field


class ProcessJobsRequest(BaseModel):
    limit: int = Field(default=10, ge=1, le=100)
