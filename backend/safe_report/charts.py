# backend/safe_report/charts.py
from __future__ import annotations

import base64
from io import BytesIO
from typing import Any, Dict, Optional

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
from matplotlib.figure import Figure

from .report_view import BAR_POST_COLOR, BAR_PRE_COLOR

# Figures are built with the object-oriented API (no pyplot state) so charts
# can be drawn from worker threads while other requests render.


def _to_data_uri(fig: Figure) -> str:
    buf = BytesIO()
    fig.savefig(buf, format='png', dpi=150, transparent=True)
    buf.seek(0)
    return "data:image/png;base64," + base64.b64encode(buf.read()).decode()


def ownership_split_chart(view: Dict[str, Any]) -> Optional[str]:
    """Doughnut of post-round ownership, one wedge per row in palette color."""
    rows = [r for r in view["rows"] if r["postShares"] > 0]
    if not rows:
        return None

    fig = Figure(figsize=(4, 4))
    ax = fig.subplots()
    ax.pie(
        [r["postShares"] for r in rows],
        colors=[r["color"] for r in rows],
        startangle=90,
        counterclock=False,
        wedgeprops={"width": 0.35, "edgecolor": "#ffffff", "linewidth": 2},
    )
    ax.set_aspect('equal')
    fig.subplots_adjust(left=0, right=1, top=1, bottom=0)
    return _to_data_uri(fig)


def ownership_bar_chart(view: Dict[str, Any]) -> Optional[str]:
    """Founder ownership before vs after the round, on a fixed 0-100 scale."""
    pre = view["bar"]["prePct"]
    post = view["bar"]["postPct"]
    if pre is None or post is None:
        return None

    fig = Figure(figsize=(4, 6))
    ax = fig.subplots()
    ax.bar([0, 1], [pre, post], width=0.5, color=[BAR_PRE_COLOR, BAR_POST_COLOR])
    ax.set_ylim(0, 100)
    ax.set_xlim(-0.5, 1.5)
    ax.axis('off')
    fig.subplots_adjust(left=0, right=1, top=1, bottom=0)
    return _to_data_uri(fig)


def attach_charts(view: Dict[str, Any]) -> Dict[str, Any]:
    view["charts"] = {
        "ownershipSplit": ownership_split_chart(view),
        "ownershipBar": ownership_bar_chart(view),
    }
    return view
