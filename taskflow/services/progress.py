"""Segmented team progress layout.

Each assignee contributes `progress / assignee_count` to a stacked bar whose
total is the task's overall progress. Two views are derived from the same
assignment list and never influence each other:
- colors, keyed by position in the assignment list
- render order, which only moves the viewer's segment to the end (on top)
"""

from dataclasses import dataclass, field
from typing import Sequence

from taskflow.models.project import Assignment, AssignmentStatus, Task
from taskflow.services.task_assignment import round_half_up


@dataclass(frozen=True)
class SegmentColor:
    name: str
    hex: str


SEGMENT_PALETTE: tuple[SegmentColor, ...] = (
    SegmentColor("emerald", "#10b981"),
    SegmentColor("blue", "#3b82f6"),
    SegmentColor("violet", "#8b5cf6"),
    SegmentColor("rose", "#f43f5e"),
    SegmentColor("amber", "#f59e0b"),
    SegmentColor("cyan", "#06b6d4"),
    SegmentColor("fuchsia", "#d946ef"),
    SegmentColor("lime", "#84cc16"),
)


@dataclass(frozen=True)
class LegendEntry:
    """One assignee in the legend, in assignment order."""

    assignee_id: int
    name: str
    progress: int
    status: AssignmentStatus
    contribution: float
    color: SegmentColor
    is_viewer: bool = False

    @property
    def label(self) -> str:
        return "You" if self.is_viewer else self.name


@dataclass(frozen=True)
class Segment:
    """A rendered bar. `start` is the cumulative offset along render order."""

    assignee_id: int
    color: SegmentColor
    start: float
    width: float
    is_viewer: bool = False

    @property
    def end(self) -> float:
        return self.start + self.width


@dataclass(frozen=True)
class ProgressLayout:
    """Stack (render order, zero-width segments dropped) plus legend."""

    overall: float
    stack: list[Segment] = field(default_factory=list)
    legend: list[LegendEntry] = field(default_factory=list)
    uses_fallback: bool = False

    @property
    def overall_display(self) -> int:
        return round_half_up(self.overall)


def color_for(index: int, palette: Sequence[SegmentColor] = SEGMENT_PALETTE) -> SegmentColor:
    return palette[index % len(palette)]


def allocate_segments(
    assignees: Sequence[Assignment],
    viewer_id: int | None,
    palette: Sequence[SegmentColor] = SEGMENT_PALETTE,
    fallback_progress: float = 0,
) -> ProgressLayout:
    """Lay out the stacked progress bar for a task's assignees.

    Without assignees there is nothing to stack and the layout carries the
    task's legacy progress value for a plain single bar.
    """
    if not assignees:
        return ProgressLayout(overall=float(fallback_progress), uses_fallback=True)

    count = len(assignees)
    legend = [
        LegendEntry(
            assignee_id=a.assignee_id,
            name=a.assignee.full_name,
            progress=a.progress,
            status=a.status,
            contribution=a.progress / count,
            color=color_for(index, palette),
            is_viewer=viewer_id is not None and a.assignee_id == viewer_id,
        )
        for index, a in enumerate(assignees)
    ]

    # sorted() is stable, so only the viewer moves
    render_order = sorted(legend, key=lambda entry: entry.is_viewer)

    stack: list[Segment] = []
    offset = 0.0
    for entry in render_order:
        if entry.contribution == 0:
            continue
        stack.append(
            Segment(
                assignee_id=entry.assignee_id,
                color=entry.color,
                start=offset,
                width=entry.contribution,
                is_viewer=entry.is_viewer,
            )
        )
        offset += entry.contribution

    return ProgressLayout(overall=offset, stack=stack, legend=legend)


def layout_for_task(task: Task, viewer_id: int | None) -> ProgressLayout:
    return allocate_segments(task.assignees, viewer_id, fallback_progress=task.progress)


def progress_tone(value: float) -> str:
    """Bar variant for a single progress value."""
    if value >= 100:
        return "success"
    if 40 <= value < 70:
        return "warning"
    return "primary"
