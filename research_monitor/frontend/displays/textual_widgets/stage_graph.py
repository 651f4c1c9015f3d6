# -*- coding: utf-8 -*-
"""
Stage graph widget for the research monitor TUI.

Linear layout:
```
 🎯 Intent  →  🔍 Query Generation  →  ⚡ Parallel Search  →  🔗 Merge Results  →  📝 Report
```

Branching layout (after the first parallel search starts):
```
 🎯 Intent  →  🔍 Query Generation  →  ⚡ Parallel Search  →  🔗 Merge Results  →  📝 Report
 ↳ 3 parallel searches running
   🔍 Search 1   🔍 Search 2   🔍 Search 3
```

The whole container is rebuilt when the layout switches; status changes
update the existing node in place.
"""

from typing import Dict, List, Optional, Sequence

from rich.text import Text
from textual.containers import Horizontal, Vertical
from textual.widget import Widget
from textual.widgets import Label, Static

from research_monitor.graph_state import Layout, Stage, StageKind, StageStatus

STATUS_STYLES = {
    StageStatus.PENDING: "dim",
    StageStatus.ACTIVE: "bold yellow",
    StageStatus.COMPLETED: "bold green",
    StageStatus.FAILED: "bold red",
}


class StageNode(Widget):
    """One stage: icon, name and status caption."""

    DEFAULT_CSS = """
    StageNode {
        width: auto;
        min-width: 14;
        height: 4;
        padding: 0 1;
        border: round $primary-darken-2;
    }

    StageNode.active {
        border: round $warning;
    }

    StageNode.completed {
        border: round $success;
    }

    StageNode.failed {
        border: round $error;
    }
    """

    def __init__(self, stage: Stage) -> None:
        super().__init__(classes=stage.status.value)
        self.stage = stage

    def render(self) -> Text:
        text = Text(f"{self.stage.icon} {self.stage.display_name}\n", style="bold")
        text.append(self.stage.label, style=STATUS_STYLES.get(self.stage.status, ""))
        return text

    def set_stage(self, stage: Stage) -> None:
        self.stage = stage
        for status in StageStatus:
            self.set_class(status == stage.status, status.value)
        if self.is_mounted:
            self.refresh()


class StageGraph(Vertical):
    """Graph container holding the stage nodes."""

    DEFAULT_CSS = """
    StageGraph {
        height: auto;
        padding: 0 1;
    }

    StageGraph .stage-row {
        height: auto;
    }

    StageGraph .stage-arrow {
        width: 3;
        height: 4;
        content-align: center middle;
        color: $text-muted;
    }

    StageGraph .branch-info {
        color: $text-muted;
        padding: 0 1;
    }

    StageGraph .branch-area {
        height: auto;
        padding-left: 2;
    }
    """

    def __init__(self, *, id: Optional[str] = None, classes: Optional[str] = None) -> None:
        super().__init__(id=id, classes=classes)
        self.graph_layout = Layout.LINEAR
        self._stage_nodes: Dict[str, StageNode] = {}
        self._branch_info: Optional[Label] = None
        self._branch_area: Optional[Horizontal] = None

    def node_for(self, stage_id: str) -> Optional[StageNode]:
        return self._stage_nodes.get(stage_id)

    @property
    def stage_ids(self) -> List[str]:
        return list(self._stage_nodes)

    def set_layout(self, layout: Layout, stages: Sequence[Stage]) -> None:
        """Replace the graph contents with ``stages`` arranged in ``layout``."""
        self.remove_children()
        self._stage_nodes.clear()
        self._branch_info = None
        self._branch_area = None
        self.graph_layout = layout

        row_items: List[Widget] = []
        branch_nodes: List[StageNode] = []
        for stage in stages:
            node = StageNode(stage)
            self._stage_nodes[stage.id] = node
            if stage.kind == StageKind.DYNAMIC:
                branch_nodes.append(node)
                continue
            if row_items:
                row_items.append(Static("→", classes="stage-arrow"))
            row_items.append(node)

        widgets: List[Widget] = [Horizontal(*row_items, classes="stage-row")]
        if layout == Layout.BRANCHING:
            self._branch_info = Label(self._branch_text(len(branch_nodes)), classes="branch-info")
            self._branch_area = Horizontal(*branch_nodes, classes="branch-area")
            widgets.extend([self._branch_info, self._branch_area])
        self.mount(*widgets)

    def add_stage(self, stage: Stage) -> None:
        if stage.id in self._stage_nodes or self._branch_area is None:
            return
        node = StageNode(stage)
        self._stage_nodes[stage.id] = node
        self._branch_area.mount(node)

    def update_stage(self, stage: Stage) -> None:
        node = self._stage_nodes.get(stage.id)
        if node is not None:
            node.set_stage(stage)

    def set_branch_count(self, count: int) -> None:
        if self._branch_info is not None:
            self._branch_info.update(self._branch_text(count))

    @staticmethod
    def _branch_text(count: int) -> str:
        if count <= 0:
            return "↳ Parallel search queries"
        return f"↳ {count} parallel searches running"
