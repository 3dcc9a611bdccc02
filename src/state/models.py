from __future__ import annotations

from enum import IntEnum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_SERVER = "https://bitwarden.com"
DEFAULT_WEBUI = "https://vault.bitwarden.com"

# Folder id used by the "No Folder" pseudo-folder in menus and `-folder -id`
NO_FOLDER_ID = "null"


class ItemType(IntEnum):
    LOGIN = 1
    SECURE_NOTE = 2
    CARD = 3
    IDENTITY = 4


class SfaMode(IntEnum):
    """Bitwarden two-step login provider ids accepted by `bw login --method`."""

    AUTHENTICATOR = 0
    EMAIL = 1
    YUBIKEY = 3


def sfa_mode_name(mode: int) -> str:
    names = {
        SfaMode.AUTHENTICATOR: "Authenticator-app",
        SfaMode.EMAIL: "Email",
        SfaMode.YUBIKEY: "YubiKey",
    }
    try:
        return names[SfaMode(mode)]
    except ValueError:
        return "Disabled"


class _BwModel(BaseModel):
    # `bw` output carries many more keys than we render; ignore them
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class LoginUri(_BwModel):
    uri: Optional[str] = None
    match: Optional[int] = None


class Login(_BwModel):
    username: Optional[str] = None
    password: Optional[str] = None
    totp: Optional[str] = None
    uris: List[LoginUri] = Field(default_factory=list)


class Card(_BwModel):
    cardholder_name: Optional[str] = Field(default=None, alias="cardholderName")
    brand: Optional[str] = None
    number: Optional[str] = None
    exp_month: Optional[str] = Field(default=None, alias="expMonth")
    exp_year: Optional[str] = Field(default=None, alias="expYear")
    code: Optional[str] = None


class Identity(_BwModel):
    title: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None


class CustomField(_BwModel):
    name: Optional[str] = None
    value: Optional[str] = None
    type: int = 0


class Attachment(_BwModel):
    id: str
    file_name: str = Field(default="", alias="fileName")
    size: Optional[str] = None
    size_name: Optional[str] = Field(default=None, alias="sizeName")
    url: Optional[str] = None


class VaultItem(_BwModel):
    """
    One vault entry as returned by `bw list items`.

    Only the subset of fields the workflow renders is modelled. `folder_id`
    is None or "" for items outside any folder.
    """

    id: str
    folder_id: Optional[str] = Field(default=None, alias="folderId")
    type: int = ItemType.LOGIN
    name: str = ""
    notes: Optional[str] = None
    favorite: bool = False
    login: Optional[Login] = None
    card: Optional[Card] = None
    identity: Optional[Identity] = None
    fields: List[CustomField] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)

    def in_folder(self, folder_id: str) -> bool:
        """Match `folder_id`; the literal "null" selects items without a folder."""
        if folder_id == NO_FOLDER_ID:
            return not self.folder_id
        return self.folder_id == folder_id

    def uris(self) -> List[str]:
        if self.login is None:
            return []
        return [u.uri for u in self.login.uris if u.uri]


class Folder(_BwModel):
    id: Optional[str] = None
    name: str = ""

    @property
    def display_id(self) -> str:
        return self.id or NO_FOLDER_ID


class SessionState(BaseModel):
    """Per-invocation login/unlock state. Empty strings mean logged out / locked."""

    user_id: str = ""
    session_key: str = ""

    @property
    def logged_in(self) -> bool:
        return bool(self.user_id)

    @property
    def unlocked(self) -> bool:
        return self.logged_in and bool(self.session_key)


class Config(BaseModel):
    """
    User-level workflow settings.

    Ages are in seconds. `cache_dir`/`data_dir` are resolved by the config
    store from Alfred's environment and are not persisted.
    """

    model_config = ConfigDict(validate_assignment=True)

    server: str = DEFAULT_SERVER
    webui: str = DEFAULT_WEBUI
    email: str = ""
    sfa: bool = False
    sfa_mode: int = SfaMode.AUTHENTICATOR
    use_apikey: bool = False
    max_results: int = Field(default=1000, ge=1)
    reordering_disabled: bool = True
    icon_cache_enabled: bool = True
    icon_max_cache_age: int = Field(default=28 * 24 * 3600, ge=0)
    auto_fetch_icon_max_cache_age: int = Field(default=24 * 3600, ge=0)
    bw_exec: str = "bw"
    bw_data_path: str = ""
    bwf_keyword: str = ".bwf"
    bwconf_keyword: str = ".bwconfig"
    cache_dir: str = ""
    data_dir: str = ""
    debug: bool = False

    @property
    def effective_sfa_mode(self) -> int:
        """The 2FA provider to send on login, or -1 when 2FA is disabled."""
        return int(self.sfa_mode) if self.sfa else -1
