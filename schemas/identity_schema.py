from pydantic import BaseModel


class Identity(BaseModel):
    """The account the identity provider vouched for."""

    id: str
    username: str


class Role(BaseModel):
    id: str
    name: str


class VerifiedMember(BaseModel):
    user_id: str
    username: str
    community_id: str
    role_id: str
