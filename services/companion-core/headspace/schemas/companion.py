from pydantic import BaseModel


class Companion(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    greeting: str
