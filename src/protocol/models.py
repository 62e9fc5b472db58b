"""
Resource Protocol Data Models.

Defines the request and response envelopes exchanged with the pipeline
orchestrator on stdin/stdout, together with the ``Source`` configuration
helpers shared by ``check`` and ``in``.
Uses Pydantic for validation and serialization.
"""

import re
from typing import List, Optional
from urllib.parse import quote_plus, urlsplit

from pydantic import (
    AwareDatetime,
    BaseModel,
    Field,
    SecretStr,
    field_serializer,
    field_validator,
)

from config import Settings

URI_PATTERN = re.compile(r"^(https?|ssh)://([^/]*)/(.*)\.git$")


class SubmoduleCredential(BaseModel):
    """Credentials used to fetch submodules hosted on ``host``."""

    host: str
    username: str
    password: SecretStr


class Source(BaseModel):
    """
    Resource configuration from the pipeline definition.

    Attributes:
        uri (str): Repository URL, ``(http|https|ssh)://<host>/<project path>.git``
        private_token (SecretStr): API token, also used for HTTPS git transport
        private_key (SecretStr): Optional SSH key enabling SSH git transport
        insecure (bool): Skip TLS verification for API and git calls
        skip_work_in_progress (bool): Ignore merge requests marked as draft
        skip_not_mergeable (bool): Ignore merge requests that cannot be merged
        skip_trigger_comment (bool): Ignore ``[trigger ci]`` comments
        concourse_url (str): Orchestrator URL, defaults to the build environment
        pipeline_name (str): Commit status name, defaults to the build pipeline
        labels (List[str]): Labels every merge request must carry
        target_branch (str): Only consider merge requests targeting this branch
        submodules (str): ``none`` disables submodule initialization
        submodule_credentials (List[SubmoduleCredential]): Per host credentials
    """

    uri: str
    private_token: SecretStr
    private_key: SecretStr = SecretStr("")
    insecure: bool = False
    skip_work_in_progress: bool = False
    skip_not_mergeable: bool = False
    skip_trigger_comment: bool = False
    concourse_url: str = ""
    pipeline_name: str = ""
    labels: List[str] = Field(default_factory=list)
    target_branch: str = ""
    submodules: str = "all"
    submodule_credentials: List[SubmoduleCredential] = Field(default_factory=list)

    @field_validator("uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        if not URI_PATTERN.match(v):
            raise ValueError(
                f"uri {v!r} does not match (http|https|ssh)://<host>/<project>.git"
            )
        return v

    @field_validator("private_token")
    @classmethod
    def validate_private_token(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("private_token must not be empty")
        return v

    @field_validator(
        "private_key",
        "concourse_url",
        "pipeline_name",
        "target_branch",
        mode="before",
    )
    @classmethod
    def null_as_empty(cls, v):
        return "" if v is None else v

    @field_validator("labels", "submodule_credentials", mode="before")
    @classmethod
    def null_as_empty_list(cls, v):
        return [] if v is None else v

    @field_validator("submodules", mode="before")
    @classmethod
    def default_submodules(cls, v: Optional[str]) -> str:
        # an empty policy behaves like any value other than "none"
        return v or "all"

    @property
    def scheme(self) -> str:
        return URI_PATTERN.match(self.uri).group(1)

    @property
    def server_domain(self) -> str:
        """Host name of the merge request service, without user-info or port."""
        return urlsplit(self.uri).hostname or ""

    @property
    def project_path(self) -> str:
        """Project path, e.g. ``group/subgroup/project``."""
        return URI_PATTERN.match(self.uri).group(3)

    @property
    def base_url(self) -> str:
        """
        Root URL of the merge request service.

        HTTP(S) URIs keep their scheme and authority. SSH URIs are reached
        over HTTPS on the same host name.
        """
        if self.scheme == "ssh":
            return f"https://{self.server_domain}"
        return f"{self.scheme}://{URI_PATTERN.match(self.uri).group(2)}"

    @property
    def api_url(self) -> str:
        return self.base_url + "/api/v4"

    @property
    def uses_ssh(self) -> bool:
        return bool(self.private_key.get_secret_value())

    @property
    def submodules_enabled(self) -> bool:
        return self.submodules != "none"

    def get_concourse_url(self, context: Settings) -> str:
        return self.concourse_url or context.atc_external_url

    def get_pipeline_name(self, context: Settings) -> str:
        return self.pipeline_name or context.build_pipeline_name

    def get_target_url(self, context: Settings) -> str:
        """
        Build URL of the running job, used as the commit status target.

        Args:
            context (Settings): Execution context holding the build environment.

        Returns:
            str: ``<concourse>/teams/<team>/pipelines/<pipeline>/jobs/<job>/builds/<build>``
        """
        segments = [
            ("teams", context.build_team_name),
            ("pipelines", context.build_pipeline_name),
            ("jobs", context.build_job_name),
            ("builds", context.build_name),
        ]
        path = "".join(f"/{kind}/{quote_plus(value)}" for kind, value in segments)
        return self.get_concourse_url(context).rstrip("/") + path


class Version(BaseModel):
    """
    Change detection cursor: a merge request iid and its activity timestamp.

    The id travels as a JSON string on the wire.
    """

    id: int
    updated_at: Optional[AwareDatetime] = None

    @field_serializer("id")
    def serialize_id(self, value: int) -> str:
        return str(value)

    def is_after(self, other: Optional["Version"]) -> bool:
        """Whether this version is strictly newer than ``other``.

        A missing cursor or a cursor without timestamp is older than anything.
        """
        if other is None or other.updated_at is None:
            return True
        if self.updated_at is None:
            return False
        return self.updated_at > other.updated_at


class MetadataField(BaseModel):
    name: str
    value: str


Metadata = List[MetadataField]


class CheckRequest(BaseModel):
    """Envelope read by ``check``."""

    source: Source
    version: Optional[Version] = None


class InRequest(BaseModel):
    """Envelope read by ``in``."""

    source: Source
    version: Version


class InResponse(BaseModel):
    """Envelope written by ``in``."""

    version: Version
    metadata: Metadata
