"""
Ordered pipeline stages of the remote fork → modify → pull request job.

The registry defines the total order of the status tokens the job reports
while it runs. Per-stage display state is derived from that order and the
latest reported status; it is never stored.
"""

from enum import Enum
from typing import Iterable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field


class StageState(str, Enum):
    """Display state of one stage relative to the current status."""

    COMPLETED = "completed"
    CURRENT = "current"
    PENDING = "pending"


class StageDescriptor(BaseModel):
    """A single known pipeline stage."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Status token the job reports while in this stage")
    label: str = Field(..., description="Human readable label")
    order: int = Field(..., description="Position in the pipeline (0-based)")


class StageRegistry:
    """
    Immutable, ordered catalog of pipeline stages.

    Order is significant and must follow the real temporal precedence in
    the remote job. Adding a stage only means inserting it at the right
    position.

    Example:
        registry = StageRegistry([("pending", "Initializing"), ("forking", "Forking")])
        registry.index_of("forking")  # 1
    """

    def __init__(self, stages: Iterable[tuple[str, str]]) -> None:
        descriptors: list[StageDescriptor] = []
        seen: set[str] = set()
        for position, (stage_id, label) in enumerate(stages):
            if stage_id in seen:
                raise ValueError(f"Duplicate stage id: {stage_id}")
            seen.add(stage_id)
            descriptors.append(StageDescriptor(id=stage_id, label=label, order=position))
        self._stages: tuple[StageDescriptor, ...] = tuple(descriptors)
        self._index: dict[str, int] = {s.id: s.order for s in self._stages}

    def __iter__(self) -> Iterator[StageDescriptor]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def __contains__(self, status_id: object) -> bool:
        return status_id in self._index

    @property
    def stages(self) -> tuple[StageDescriptor, ...]:
        return self._stages

    def ids(self) -> list[str]:
        return [s.id for s in self._stages]

    def index_of(self, status_id: Optional[str]) -> Optional[int]:
        """Position of a status token, or None if it is not a known stage."""
        if status_id is None:
            return None
        return self._index.get(status_id)

    def get(self, status_id: str) -> Optional[StageDescriptor]:
        index = self.index_of(status_id)
        if index is None:
            return None
        return self._stages[index]

    def label_for(self, status_id: str) -> str:
        """Label of a known stage; unknown tokens are returned unchanged."""
        stage = self.get(status_id)
        return stage.label if stage else status_id


DEFAULT_STAGES: list[tuple[str, str]] = [
    ("pending", "Initializing"),
    ("validating", "Validating Prompt"),
    ("forking", "Forking Repository"),
    ("cloning", "Cloning Fork"),
    ("analyzing", "Analyzing Code"),
    ("modifying", "Generating Modifications"),
    ("committing", "Committing Changes"),
    ("creating_pr", "Creating Pull Request"),
]

DEFAULT_REGISTRY = StageRegistry(DEFAULT_STAGES)


def resolve(registry: StageRegistry, raw_status: Optional[str]) -> dict[str, StageState]:
    """
    Compute the display state of every stage for a reported status.

    Stages before the current one are completed, the matching stage is
    current, later stages are pending. A status the registry does not know
    (including terminal tokens and None) leaves every stage pending.
    """
    current_index = registry.index_of(raw_status)
    if current_index is None:
        return {stage.id: StageState.PENDING for stage in registry}

    states: dict[str, StageState] = {}
    for stage in registry:
        if stage.order < current_index:
            states[stage.id] = StageState.COMPLETED
        elif stage.order == current_index:
            states[stage.id] = StageState.CURRENT
        else:
            states[stage.id] = StageState.PENDING
    return states
