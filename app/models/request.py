from pydantic import BaseModel, Field


class ClassifyRequest(BaseModel):
    event_signatures: list[str] = Field(default=[], alias="eventSignatures")

    model_config = {"populate_by_name": True}
