"""Credential data models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class AuthMethod(str, Enum):
    EMAIL = "email"
    GOOGLE = "google"
    WALLET = "wallet"


class Credentials(BaseModel):
    """The single active credential set for this user profile."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    token: str
    # Unit is ambiguous: seconds or milliseconds since the epoch.
    expires_at: int
    auth_method: AuthMethod
    email: str | None = None
    address: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class AuthToken(BaseModel):
    token: str
    expires_at: int


class AuthTokenResponse(BaseModel):
    auth: AuthToken
