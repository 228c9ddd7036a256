"""Base model for search request payloads."""

from pydantic import BaseModel, ConfigDict


class SearchRequestModel(BaseModel):
    """Unknown keys are rejected so a misspelled filter fails instead of being ignored."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, validate_assignment=True)
