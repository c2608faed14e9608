from pydantic import BaseModel, Field
from typing import Optional


class StoredCredential(BaseModel):
    """A row of the credentials table."""
    account_name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    pin: str = ""


class CredentialUpdate(BaseModel):
    email: Optional[str] = Field(default=None, min_length=1)
    password: Optional[str] = Field(default=None, min_length=1)
    pin: Optional[str] = None


class CredentialSummary(BaseModel):
    """What the API shows about stored credentials; secrets never leave the service."""
    account_name: str
    email: str
    has_pin: bool

    @classmethod
    def from_stored(cls, credential: StoredCredential) -> "CredentialSummary":
        return cls(account_name=credential.account_name, email=credential.email, has_pin=bool(credential.pin))


class BrokerCredentials(BaseModel):
    """What the browser driver needs to log in."""
    username: str
    password: str
    pin: str = ""

    def __repr__(self):
        return f"BrokerCredentials(username={self.username!r}, password='***', pin='***')"
