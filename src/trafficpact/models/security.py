"""Security scheme and security value models.

A scheme describes where a credential is placed on the wire; the
matching values (joined by ``id``) carry the secret itself, possibly as
a ``$NAME`` reference resolved later through an injected lookup.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class SecurityType(str, Enum):
    APIKEY = "apikey"
    HTTP = "http"


class HttpScheme(str, Enum):
    BASIC = "basic"
    BEARER = "bearer"
    DIGEST = "digest"


class ApiKeyPlacement(str, Enum):
    HEADER = "header"
    QUERY = "query"
    PATH = "path"
    BODY = "body"


class SecurityScheme(BaseModel):
    """Placement rules for one credential."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    id: str
    type: SecurityType
    scheme: HttpScheme | None = None
    placement: ApiKeyPlacement | None = Field(default=None, alias="in")
    name: str | None = None
    authorization_header: str | None = None
    challenge_header: str | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> "SecurityScheme":
        if self.type is SecurityType.HTTP and self.scheme is None:
            raise ValueError(f"HTTP security scheme {self.id!r} requires 'scheme'")
        if self.type is SecurityType.APIKEY and self.placement is None:
            raise ValueError(f"API key security scheme {self.id!r} requires 'in'")
        return self


class SecurityValues(BaseModel):
    """Secret material for one scheme; exactly one form must be given."""

    model_config = {"extra": "forbid"}

    id: str
    apikey: str | None = None
    username: str | None = None
    password: str | None = None
    token: str | None = None
    digest: str | None = None

    @model_validator(mode="after")
    def _check_one_form(self) -> "SecurityValues":
        forms = [
            self.apikey is not None,
            self.username is not None or self.password is not None,
            self.token is not None,
            self.digest is not None,
        ]
        if sum(forms) != 1:
            raise ValueError(
                f"Security values {self.id!r} must define exactly one of "
                "apikey, username/password, token or digest"
            )
        if (self.username is None) != (self.password is None):
            raise ValueError(
                f"Security values {self.id!r} require both username and password"
            )
        return self
