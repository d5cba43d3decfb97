"""
Charts module for the Timelog Dashboard.

This module draws the weekly calendar from laid-out rectangles and the
per-label time summary. The calendar is drawn in pixel coordinates taken
straight from the geometry mapper, with day headings on top and hour ticks on
the left.
"""

from typing import List, Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from timelog import config
from timelog.day_split import format_day_label
from timelog.geometry import CalendarAxis, Rect, hour_to_y
from timelog.models import BlockKind

SYSTEM_OPACITY = 0.35
BLOCK_OPACITY = 0.85


def _rect_color(rect: Rect) -> str:
    if rect.block.kind == BlockKind.SYSTEM:
        return config.TRACK_COLORS.get(rect.block.label, "#BAB0AC")
    return config.TRACK_COLORS[rect.block.kind.value]


def _hover_text(rect: Rect, axis: CalendarAxis) -> str:
    block = rect.block
    start = block.start.astimezone(axis.tz)
    end = block.end.astimezone(axis.tz)
    minutes = int(block.duration.total_seconds() // 60)
    return f"{block.label}<br>{start:%H:%M}-{end:%H:%M} ({minutes}m)<br>{block.kind.value}"


def create_week_calendar(rects: List[Rect], axis: CalendarAxis, title: Optional[str] = None) -> go.Figure:
    """
    Create the weekly calendar figure.

    Args:
        rects: Rectangles from the geometry mapper, in drawing order.
        axis: The axis the rectangles were computed with.
        title: Optional figure title.

    Returns:
        A plotly Figure with one shape per block and an invisible marker
        trace carrying the hover text.
    """
    fig = go.Figure()

    shapes = []
    for rect in rects:
        is_system = rect.block.kind == BlockKind.SYSTEM
        shapes.append(dict(
            type="rect",
            x0=rect.x, x1=rect.x + rect.width,
            y0=rect.y, y1=rect.y + rect.height,
            fillcolor=_rect_color(rect),
            opacity=SYSTEM_OPACITY if is_system else BLOCK_OPACITY,
            line=dict(width=0 if is_system else 1, color="white"),
            layer="below",
        ))

    # Day column separators
    for i in range(len(axis.days) + 1):
        x = axis.left_gutter + i * axis.day_column_width
        shapes.append(dict(
            type="line", x0=x, x1=x, y0=axis.label_height, y1=axis.view_height - axis.label_height,
            line=dict(color="#DDDDDD", width=1), layer="below",
        ))

    if rects:
        fig.add_trace(go.Scatter(
            x=[r.x + r.width / 2 for r in rects],
            y=[r.y + r.height / 2 for r in rects],
            mode="markers",
            marker=dict(size=max(4, axis.day_column_width / 10), opacity=0),
            hovertext=[_hover_text(r, axis) for r in rects],
            hoverinfo="text",
            showlegend=False,
        ))

    hours = range(int(axis.visible_start_hour), int(axis.visible_end_hour) + 1)
    hour_ticks = [hour_to_y(axis, h) for h in hours]
    annotations = [
        dict(
            x=axis.left_gutter + (i + 0.5) * axis.day_column_width,
            y=axis.label_height / 2,
            text=format_day_label(day, axis.tz),
            showarrow=False,
            font=dict(size=12),
        )
        for i, day in enumerate(axis.days)
    ]

    fig.update_layout(
        title_text=title,
        shapes=shapes,
        annotations=annotations,
        height=int(axis.view_height) + 60,
        margin=dict(l=10, r=10, t=40 if title else 10, b=10),
        plot_bgcolor="white",
        xaxis=dict(range=[0, axis.width], visible=False, fixedrange=True),
        yaxis=dict(
            range=[axis.view_height, 0],
            tickvals=hour_ticks,
            ticktext=[f"{h:02d}:00" for h in hours],
            showgrid=True,
            gridcolor="#F0F0F0",
            zeroline=False,
            fixedrange=True,
        ),
    )
    return fig


def create_summary_chart(summary: pd.DataFrame, top_n: int = 15) -> Optional[go.Figure]:
    """
    Create a horizontal bar chart of minutes per label.

    Args:
        summary: Output of `summarize_blocks` (kind, label, minutes, blocks).
        top_n: Number of labels to show.

    Returns:
        A plotly Figure, or None when there is nothing to show.
    """
    if summary is None or summary.empty:
        return None

    data_to_plot = summary.sort_values("minutes", ascending=False).head(top_n).copy()
    data_to_plot["minutesText"] = data_to_plot["minutes"].round().astype(int).astype(str) + "m"
    fig = px.bar(
        data_to_plot,
        x="minutes",
        y="label",
        color="kind",
        orientation="h",
        text="minutesText",
        labels={"minutes": "Time (minutes)", "label": ""},
        title="Time by Label",
        color_discrete_map={
            "focused": config.TRACK_COLORS["focused"],
            "process": config.TRACK_COLORS["process"],
            "system": config.TRACK_COLORS["Idle"],
        },
    )
    fig.update_layout(height=max(300, 28 * len(data_to_plot) + 100), yaxis=dict(autorange="reversed"))
    fig.update_traces(textposition="outside")
    return fig
