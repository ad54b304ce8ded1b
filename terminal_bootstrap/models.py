"""
In-memory models for the terminal bootstrap controller.

Seeds are read from the garden cluster as raw resource dicts (the shape kopf
and CustomObjectsApi hand out) and wrapped in ``Seed`` for the pipeline.
Nothing here is persisted: a restart drops every queued task.
"""
from dataclasses import dataclass, field
from enum import Enum

ROLE_LABEL = "garden.sapcloud.io/role"
ROLE_SOIL = "soil"
OPT_OUT_ANNOTATION = "dashboard.garden.sapcloud.io/terminal-bootstrap-resources-disabled"


@dataclass(frozen=True)
class Seed:
    name: str
    role: str = ""
    labels: dict = field(default_factory=dict)
    annotations: dict = field(default_factory=dict)
    secret_ref: dict = field(default_factory=dict)
    ingress_domain: str = ""

    @classmethod
    def from_resource(cls, body: dict) -> "Seed":
        """Build a Seed from a ``garden.sapcloud.io/v1beta1`` Seed resource."""
        metadata = body.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            raise ValueError("Seed resource has no metadata.name")
        spec = body.get("spec") or {}
        labels = dict(metadata.get("labels") or {})
        return cls(
            name=name,
            role=labels.get(ROLE_LABEL, ""),
            labels=labels,
            annotations=dict(metadata.get("annotations") or {}),
            secret_ref=dict(spec.get("secretRef") or {}),
            ingress_domain=spec.get("ingressDomain", ""),
        )

    @property
    def is_soil(self) -> bool:
        return self.role == ROLE_SOIL

    @property
    def bootstrap_disabled(self) -> bool:
        """True when the seed opts out of terminal bootstrapping."""
        value = self.annotations.get(OPT_OUT_ANNOTATION)
        if value is None:
            return False
        return str(value).strip().lower() not in ("", "false", "0", "no")


class TaskState(str, Enum):
    ENQUEUED = "enqueued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BootstrapTask:
    seed: Seed
    state: TaskState = TaskState.ENQUEUED


@dataclass(frozen=True)
class BootstrapResult:
    """Outcome of one bootstrap task, handed to the queue observer."""
    seed_name: str
    succeeded: bool
    step: str | None = None
    error: BaseException | None = None
    duration_seconds: float = 0.0
