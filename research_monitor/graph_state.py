# -*- coding: utf-8 -*-
"""
Graph state for a research run.

Tracks the pipeline stages shown as graph nodes: a fixed, ordered set of static
stages plus parallel search branches created the first time the server starts
one. The first branch of a run switches the graph from the linear layout to the
branching layout; reset() restores the linear layout exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from research_monitor.logger_config import logger
from research_monitor.view import ViewPort


class StageKind(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


class StageStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class Layout(str, Enum):
    LINEAR = "linear"
    BRANCHING = "branching"


# Default node captions per status
STATUS_LABELS: Dict[StageStatus, str] = {
    StageStatus.PENDING: "Waiting",
    StageStatus.ACTIVE: "Running...",
    StageStatus.COMPLETED: "Done",
    StageStatus.FAILED: "Error",
}

_STATUS_RANK = {
    StageStatus.PENDING: 0,
    StageStatus.ACTIVE: 1,
    StageStatus.COMPLETED: 2,
    StageStatus.FAILED: 2,
}


@dataclass(frozen=True)
class StageSpec:
    """Static stage definition: id and display name."""

    id: str
    display_name: str
    icon: str = "•"


@dataclass
class Stage:
    """One graph node."""

    id: str
    kind: StageKind
    display_name: str
    status: StageStatus = StageStatus.PENDING
    label: str = STATUS_LABELS[StageStatus.PENDING]
    icon: str = "•"


@dataclass(frozen=True)
class GraphTopology:
    """Snapshot of the graph shape.

    Attributes:
        static_layout: Static stage ids in display order (the linear layout)
        dynamic_stage_ids: Branch stage ids in creation order
        layout: BRANCHING iff dynamic_stage_ids is non-empty
    """

    static_layout: Tuple[str, ...]
    dynamic_stage_ids: Tuple[str, ...]
    layout: Layout


DEFAULT_BRANCH_PREFIX = "search_query_"
DEFAULT_BRANCH_LABEL = "Search {suffix}"


def branch_display_name(stage_id: str, prefix: str = DEFAULT_BRANCH_PREFIX, template: str = DEFAULT_BRANCH_LABEL) -> str:
    """Display name of a branch stage, derived from the id suffix.

    >>> branch_display_name("search_query_3")
    'Search 3'
    """
    suffix = stage_id[len(prefix) :] if stage_id.startswith(prefix) else stage_id
    return template.format(suffix=suffix)


class GraphState:
    """Stage registry and topology for the current run.

    Every mutation is pushed to the view port. Unknown stage ids are reported
    as diagnostics and otherwise ignored; nothing here raises on bad input
    from the server.
    """

    def __init__(
        self,
        static_stages: Sequence[StageSpec],
        view: Optional[ViewPort] = None,
        *,
        branch_prefix: str = DEFAULT_BRANCH_PREFIX,
        branch_label: str = DEFAULT_BRANCH_LABEL,
        branch_icon: str = "🔍",
    ):
        ids = [spec.id for spec in static_stages]
        if len(set(ids)) != len(ids):
            raise ValueError(f"static stage ids must be unique: {ids}")

        self._specs: Tuple[StageSpec, ...] = tuple(static_stages)
        self._static_layout: Tuple[str, ...] = tuple(ids)
        self._view = view or ViewPort()
        self._branch_prefix = branch_prefix
        self._branch_label = branch_label
        self._branch_icon = branch_icon

        self._static: Dict[str, Stage] = {}
        self._dynamic: Dict[str, Stage] = {}
        self._dynamic_order: List[str] = []
        self._layout = Layout.LINEAR
        self._build_static()

    def _build_static(self) -> None:
        self._static = {
            spec.id: Stage(id=spec.id, kind=StageKind.STATIC, display_name=spec.display_name, icon=spec.icon)
            for spec in self._specs
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def layout(self) -> Layout:
        return self._layout

    @property
    def dynamic_count(self) -> int:
        return len(self._dynamic_order)

    @property
    def topology(self) -> GraphTopology:
        return GraphTopology(
            static_layout=self._static_layout,
            dynamic_stage_ids=tuple(self._dynamic_order),
            layout=self._layout,
        )

    def is_branch_stage(self, stage_id: Optional[str]) -> bool:
        """Whether ``stage_id`` follows the parallel-branch naming convention."""
        if not stage_id or stage_id in self._static:
            return False
        return stage_id.startswith(self._branch_prefix)

    def get(self, stage_id: str) -> Optional[Stage]:
        return self._static.get(stage_id) or self._dynamic.get(stage_id)

    def stages(self) -> List[Stage]:
        """Static stages in layout order followed by branches in creation order."""
        return [self._static[sid] for sid in self._static_layout] + [self._dynamic[sid] for sid in self._dynamic_order]

    def display_name(self, stage_id: Optional[str]) -> str:
        if not stage_id:
            return "pipeline"
        if stage_id in self._static:
            return self._static[stage_id].display_name
        if stage_id.startswith(self._branch_prefix):
            return branch_display_name(stage_id, self._branch_prefix, self._branch_label)
        return stage_id

    def progress_summary(self) -> Tuple[int, int]:
        """Return ``(completed, total)`` over static and current branch stages."""
        stages = self.stages()
        completed = sum(1 for stage in stages if stage.status == StageStatus.COMPLETED)
        return completed, len(stages)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_status(self, stage_id: Optional[str], status: StageStatus, label: Optional[str] = None) -> bool:
        """Set a stage's status and caption.

        Returns:
            True if the stage exists and the transition was applied
        """
        stage = self.get(stage_id) if stage_id else None
        if stage is None:
            logger.debug(f"[GraphState] Ignoring status {status.value} for unknown stage: {stage_id!r}")
            return False

        if status != stage.status and _STATUS_RANK[status] <= _STATUS_RANK[stage.status]:
            logger.warning(f"[GraphState] Rejected transition {stage.status.value} -> {status.value} for {stage_id}")
            return False

        stage.status = status
        stage.label = label if label is not None else STATUS_LABELS[status]
        self._view.set_stage_status(replace(stage))
        return True

    def ensure_dynamic_stage(self, stage_id: str) -> Stage:
        """Create the branch stage ``stage_id`` unless it already exists."""
        existing = self._dynamic.get(stage_id)
        if existing is not None:
            return existing

        if not self._dynamic_order:
            self._layout = Layout.BRANCHING
            self._view.set_graph_layout(self._layout, [replace(stage) for stage in self.stages()])

        stage = Stage(
            id=stage_id,
            kind=StageKind.DYNAMIC,
            display_name=branch_display_name(stage_id, self._branch_prefix, self._branch_label),
            icon=self._branch_icon,
        )
        self._dynamic[stage_id] = stage
        self._dynamic_order.append(stage_id)
        self._view.add_stage(replace(stage))
        self._view.set_branch_count(len(self._dynamic_order))
        logger.debug(f"[GraphState] Created branch stage {stage_id} (total: {len(self._dynamic_order)})")
        return stage

    def reset(self) -> None:
        """Return to the initial topology with every static stage pending."""
        was_branching = self._layout == Layout.BRANCHING
        self._dynamic.clear()
        self._dynamic_order.clear()
        self._layout = Layout.LINEAR
        self._build_static()

        if was_branching:
            self._view.set_graph_layout(self._layout, [replace(stage) for stage in self.stages()])
        else:
            for stage in self.stages():
                self._view.set_stage_status(replace(stage))
        self._view.set_branch_count(0)
        self._view.set_progress(*self.progress_summary())
