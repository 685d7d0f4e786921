"""
Record types and the job state machine.

- Segment: one translatable string of a parsed resource
- TranslationUnit: a request (no target) or a translation
- Job: a batch of translation units travelling through a provider
- JobStatus / transition(): the job lifecycle

All records are frozen; changes produce new values through
``dataclasses.replace`` or ``transition``.
"""

from dataclasses import dataclass, field, replace, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from transmem.exceptions import InvalidTransitionError
from transmem.normalization.parts import Part, parts_from_json, parts_to_json

SOURCE_TU_FIELDS = ("guid", "rid", "sid", "nsrc", "prj", "notes", "plural_form", "seq")
TARGET_TU_FIELDS = ("guid", "ntgt", "inflight", "q", "ts", "cost", "job_guid", "translation_provider", "th")


@dataclass(frozen=True)
class Segment:
    sid: str
    nstr: Tuple[Part, ...]
    guid: str
    gstr: str
    notes: Optional[Any] = None
    plural_form: Optional[str] = None
    seq: Optional[int] = None


@dataclass(frozen=True)
class TranslationUnit:
    guid: str
    rid: Optional[str] = None
    sid: Optional[str] = None
    source_lang: Optional[str] = None
    target_lang: Optional[str] = None
    nsrc: Optional[Tuple[Part, ...]] = None
    ntgt: Optional[Tuple[Part, ...]] = None
    q: Optional[int] = None
    ts: Optional[int] = None
    prj: Optional[str] = None
    notes: Optional[Any] = None
    plural_form: Optional[str] = None
    seq: Optional[int] = None
    inflight: bool = False
    job_guid: Optional[str] = None
    translation_provider: Optional[str] = None
    cost: Optional[float] = None
    th: Optional[str] = None

    def __post_init__(self):
        # Accept lists on construction but keep the record immutable
        if self.nsrc is not None and not isinstance(self.nsrc, tuple):
            object.__setattr__(self, "nsrc", tuple(self.nsrc))
        if self.ntgt is not None and not isinstance(self.ntgt, tuple):
            object.__setattr__(self, "ntgt", tuple(self.ntgt))

    def as_source(self) -> "TranslationUnit":
        """Keep only the source side fields."""
        return TranslationUnit(**{k: getattr(self, k) for k in SOURCE_TU_FIELDS})

    def as_target(self) -> "TranslationUnit":
        """Keep only the target side fields."""
        return TranslationUnit(**{k: getattr(self, k) for k in TARGET_TU_FIELDS})

    def merged_with(self, other: "TranslationUnit") -> "TranslationUnit":
        """Overlay the non-empty fields of ``other`` on this unit."""
        changes = {}
        for f in fields(other):
            value = getattr(other, f.name)
            if value is not None and value is not False:
                changes[f.name] = value
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or (f.name == "inflight" and not value):
                continue
            if f.name in ("nsrc", "ntgt"):
                value = parts_to_json(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranslationUnit":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "nsrc" in values:
            values["nsrc"] = parts_from_json(values["nsrc"])
        if "ntgt" in values:
            values["ntgt"] = parts_from_json(values["ntgt"])
        values["inflight"] = bool(values.get("inflight", False))
        return cls(**values)


class JobStatus(str, Enum):
    CREATED = "created"
    BLOCKED = "blocked"
    PENDING = "pending"
    DONE = "done"
    # Outcome of a job that turned out to have nothing to do; never persisted
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS = {
    JobStatus.CREATED: {JobStatus.BLOCKED, JobStatus.PENDING, JobStatus.DONE, JobStatus.CANCELLED},
    JobStatus.BLOCKED: {JobStatus.PENDING, JobStatus.DONE, JobStatus.CANCELLED},
    JobStatus.PENDING: {JobStatus.PENDING, JobStatus.DONE},
    JobStatus.DONE: set(),
    JobStatus.CANCELLED: set(),
}

# Status label used by the job store for each internal status
EXTERNAL_STATUS = {
    JobStatus.CREATED: "req",
    JobStatus.BLOCKED: "req",
    JobStatus.PENDING: "pending",
    JobStatus.DONE: "done",
}


def external_status(status: JobStatus) -> str:
    return EXTERNAL_STATUS[JobStatus(status)]


@dataclass(frozen=True)
class Job:
    source_lang: str
    target_lang: str
    job_guid: Optional[str] = None
    status: JobStatus = JobStatus.CREATED
    translation_provider: Optional[str] = None
    tus: Tuple[TranslationUnit, ...] = ()
    inflight: Tuple[str, ...] = ()
    original_job_guid: Optional[str] = None
    updated_at: Optional[str] = None
    job_props: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "status", JobStatus(self.status))
        if not isinstance(self.tus, tuple):
            object.__setattr__(self, "tus", tuple(self.tus))
        if not isinstance(self.inflight, tuple):
            object.__setattr__(self, "inflight", tuple(self.inflight))

    @property
    def guids(self) -> List[str]:
        return [tu.guid for tu in self.tus]

    def with_tus(self, tus: Iterable[TranslationUnit]) -> "Job":
        return replace(self, tus=tuple(tus))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "job_guid": self.job_guid,
            "source_lang": self.source_lang,
            "target_lang": self.target_lang,
            "status": self.status.value,
            "translation_provider": self.translation_provider,
            "updated_at": self.updated_at,
            "tus": [tu.to_dict() for tu in self.tus],
        }
        if self.inflight:
            data["inflight"] = list(self.inflight)
        if self.original_job_guid:
            data["original_job_guid"] = self.original_job_guid
        if self.job_props:
            data["job_props"] = dict(self.job_props)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        return cls(
            job_guid=data.get("job_guid"),
            source_lang=data["source_lang"],
            target_lang=data["target_lang"],
            status=JobStatus(data.get("status", JobStatus.CREATED.value)),
            translation_provider=data.get("translation_provider"),
            tus=tuple(TranslationUnit.from_dict(tu) for tu in data.get("tus", [])),
            inflight=tuple(data.get("inflight") or ()),
            original_job_guid=data.get("original_job_guid"),
            updated_at=data.get("updated_at"),
            job_props=dict(data.get("job_props") or {}),
        )


def transition(job: Job, status: JobStatus, **changes) -> Job:
    """
    Return a copy of ``job`` moved to ``status``.

    Raises:
        InvalidTransitionError: If the state machine does not allow the move
    """
    status = JobStatus(status)
    if status not in ALLOWED_TRANSITIONS[job.status]:
        raise InvalidTransitionError(
            f"Job {job.job_guid} cannot go from {job.status.value} to {status.value}",
            code="invalid_transition",
            details={"job_guid": job.job_guid, "from": job.status.value, "to": status.value},
        )
    return replace(job, status=status, **changes)
