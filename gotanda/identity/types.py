"""
identity/types.py

Stored record shapes for the user directory.

Records are validated with pydantic before they are trusted. String fields are
strict: a stored number where a string belongs is corruption, not something to coerce.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


class ApiToken(BaseModel):
    token: StrictStr
    name: StrictStr


class PublicAccount(BaseModel):
    """
    The account as seen outside the directory. Never carries API tokens.
    """

    model_config = ConfigDict(populate_by_name=True)

    account_id: StrictStr = Field(alias="accountId")
    identities: Dict[StrictStr, Dict[str, Any]] = Field(default_factory=dict)


class Account(PublicAccount):
    """
    Internal record stored under the account key.
    """

    api_tokens: List[ApiToken] = Field(default_factory=list, alias="apiTokens")

    def to_public(self) -> PublicAccount:
        return PublicAccount(account_id=self.account_id, identities=dict(self.identities))

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class FederatedProfile(BaseModel):
    """
    Profile handed over by a federated login (passport-style field names).
    Unknown fields are kept; cached raw payloads are stripped before storage.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    provider: str = "github"
    id: str
    username: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v: Any) -> Any:
        # GitHub hands out numeric ids; keys are built from their decimal text.
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


ALLOW_ALL = "*"


@dataclass(frozen=True)
class Allowlist:
    """
    Identities admitted to sign up. A match on either set is enough.
    `ids` holds stable numeric ids, `usernames` the mutable display handles.
    """

    ids: FrozenSet[str] = field(default_factory=frozenset)
    usernames: FrozenSet[str] = field(default_factory=frozenset)

    def admits(self, external_id: str, username: Optional[str]) -> bool:
        if external_id in self.ids:
            return True
        return bool(username) and username in self.usernames


AllowlistPolicy = Union[Literal["*"], Allowlist]
