from pydantic import BaseModel


class AIReplyRequest(BaseModel):
    content: str

class AIReplyResponse(BaseModel):
    reply: str
