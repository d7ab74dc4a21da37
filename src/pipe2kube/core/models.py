from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Literal, Optional, Tuple

from pipe2kube.utils import slugify_ref

MERGE_REQUEST_EVENT = "merge_request_event"
SHORT_SHA_LEN = 8


class PipelineContext(BaseModel):
    """
    Неизменяемый контекст запуска: всё, что в GitLab CI лежит в предопределённых
    переменных (CI_COMMIT_SHA, CI_COMMIT_BRANCH и т.д.). Собирается один раз и
    передаётся в каждый компонент явно.
    """

    model_config = ConfigDict(frozen=True)

    commit_sha: str
    branch: Optional[str] = None
    tag: Optional[str] = None
    source: str = "push"
    mr_source_branch: Optional[str] = None
    default_branch: str = "main"

    registry: str = ""
    project_path: str = ""
    registry_user: Optional[str] = None
    registry_password: Optional[str] = Field(default=None, repr=False)
    job_token: Optional[str] = Field(default=None, repr=False)

    approved_jobs: Tuple[str, ...] = ()

    @property
    def ref_name(self) -> str:
        return self.branch or self.tag or self.mr_source_branch or ""

    @property
    def ref_slug(self) -> str:
        return slugify_ref(self.ref_name)

    @property
    def short_sha(self) -> str:
        return self.commit_sha[:SHORT_SHA_LEN]

    @property
    def image_name(self) -> str:
        return f"{self.registry}/{self.project_path}".strip("/")

    @property
    def is_merge_request(self) -> bool:
        return self.source == MERGE_REQUEST_EVENT

    def secrets(self) -> List[str]:
        return [s for s in (self.registry_password, self.job_token) if s]


class ImageReference(BaseModel):
    """
    Опубликованный образ. Набор тегов всегда содержит тег коммита —
    по нему образ однозначно связывается с исходниками.
    """

    model_config = ConfigDict(frozen=True)

    registry: str
    repository: str
    sha_tag: str
    tags: Tuple[str, ...]

    @model_validator(mode="after")
    def _sha_tag_present(self):
        if self.sha_tag not in self.tags:
            raise ValueError(f"image tags {list(self.tags)} must contain commit tag '{self.sha_tag}'")
        return self

    @property
    def name(self) -> str:
        return f"{self.registry}/{self.repository}".strip("/")

    def ref(self, tag: Optional[str] = None) -> str:
        return f"{self.name}:{tag or self.sha_tag}"


class PublishResult(BaseModel):
    image: ImageReference
    pushed: List[str]
    logs: List[str] = []
    warnings: List[str] = []


class DeployState(str, Enum):
    PENDING = "Pending"
    AUTHENTICATING = "Authenticating"
    NAMESPACE_ENSURED = "NamespaceEnsured"
    MANIFESTS_APPLIED = "ManifestsApplied"
    ROLLOUT_IN_PROGRESS = "RolloutInProgress"
    ROLLOUT_COMPLETE = "RolloutComplete"
    ROLLOUT_FAILED = "RolloutFailed"


class DeployResult(BaseModel):
    environment: str
    namespace: str
    state: DeployState = DeployState.PENDING
    history: List[DeployState] = Field(default_factory=lambda: [DeployState.PENDING])
    image: Optional[str] = None
    url: Optional[str] = None
    applied: List[str] = []
    logs: List[str] = []
    warnings: List[str] = []

    def move(self, state: DeployState) -> None:
        self.state = state
        self.history.append(state)


JobStatus = Literal["success", "failed", "allowed_failure", "manual", "skipped"]
Decision = Literal["run", "manual", "never"]


class PlannedJob(BaseModel):
    name: str
    stage: str
    decision: Decision
    approved: bool = False

    @property
    def runnable(self) -> bool:
        return self.decision == "run" or (self.decision == "manual" and self.approved)


class JobResult(BaseModel):
    name: str
    stage: str
    status: JobStatus
    error: Optional[str] = None
    logs: List[str] = []


class PipelineReport(BaseModel):
    status: Literal["success", "failed"]
    context_ref: str
    commit: str
    stages: List[str]
    jobs: List[JobResult] = []
    image: Optional[ImageReference] = None
    deployments: List[DeployResult] = []
    logs: List[str] = []
    warnings: List[str] = []

    @property
    def exit_code(self) -> int:
        return 0 if self.status == "success" else 1

    def job(self, name: str) -> Optional[JobResult]:
        for job in self.jobs:
            if job.name == name:
                return job
        return None
