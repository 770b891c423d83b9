from pydantic import BaseModel, Field
from typing import Optional, List


class Agent(BaseModel):
    """Agent account on the evaluation platform."""

    agent_id: str
    name: Optional[str] = None
    email: str


class ContactResponse(BaseModel):
    """Single message within an imported contact."""

    message: str
    speaker_is_customer: bool
    message_created_at: Optional[str] = None
    speaker_email: Optional[str] = None
    response_id: Optional[str] = None
    channel: Optional[str] = None


class ContactMetadata(BaseModel):
    Filename: str = ""
    Status: Optional[str] = None
    AgentResponses: Optional[int] = None
    Contact: str = "Ticket"


class ContactData(BaseModel):
    reference: str
    agent_id: str
    agent_email: str
    contact_date: str
    channel: str
    assigned_at: str
    solved_at: str
    external_url: str = "https://www.evaluagent.com/platform/product-tours/"
    responses_stored_externally: str = "true"
    responses: List[ContactResponse] = Field(default_factory=list)
    metadata: ContactMetadata = Field(default_factory=ContactMetadata)

    # Telephony only
    handling_time: Optional[float] = None
    customer_telephone_number: Optional[str] = None
    audio_file_path: Optional[str] = None


class Contact(BaseModel):
    """Imported-contact payload accepted by the evaluation platform."""

    data: ContactData

    def payload(self) -> dict:
        return self.model_dump(exclude_none=True)
