"""
streammates.schemas
~~~~~~~~~~~~~~~~~~~
Pydantic schemas and models for the API and the signaling wire format.
"""
from streammates.schemas.api_response import ApiResponse
from streammates.schemas.documents import (
    PresenceData,
    QueryRequest,
    UpdateOperators,
    UpdateRequest,
    WriteResultData,
)
from streammates.schemas.envelope import Envelope

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
