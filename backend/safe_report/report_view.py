# backend/safe_report/report_view.py
"""
Display model for the report templates.

Everything the pages show that is derived from the cap table (per-row
percentages, totals, founder ownership, chart colors, interpretation text)
is computed here from row data. Upstream percentages in the summary block are
shown as-is but never used as the basis for per-row figures.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from .log import get_logger
from .models import CapTableRow, ReportPayload

LOG = get_logger("report_view")

DEFAULT_ROUND_NAME = "Series A"

# =============================================================================
# Chart palette, cycled per category by occurrence index
# =============================================================================
CATEGORY_PALETTES: Dict[str, List[str]] = {
    "Founder": ["#5F17EA", "#7C3AED", "#9333EA", "#A855F7", "#C084FC", "#D8B4FE"],
    "Investor": ["#3B82F6", "#60A5FA", "#93C5FD", "#BFDBFE", "#2563EB", "#1D4ED8"],
    "SAFE Converter": ["#10B981", "#34D399", "#6EE7B7", "#A7F3D0"],
    "ESOP": ["#FACC15", "#FDE047", "#FEF08A"],
    "Other": ["#64748B", "#94A3B8", "#CBD5E1"],
}

BAR_PRE_COLOR = "#E5E5ED"
BAR_POST_COLOR = "#5F17EA"

# Bar label placement on the ownership page: 0% sits at 805px, 100% at 65px
_BAR_FLOOR_PX = 805
_BAR_PX_PER_PCT = 7.4

_LEGEND_MIN_PCT = 0.1


def row_category(row: CapTableRow) -> str:
    if row.is_founder:
        return "Founder"
    if row.is_investor:
        return "Investor"
    if row.is_safe:
        return "SAFE Converter"
    if row.badge == "ESOP":
        return "ESOP"
    return "Other"


def assign_colors(rows: List[CapTableRow]) -> List[str]:
    counters: Dict[str, int] = {}
    colors = []
    for row in rows:
        cat = row_category(row)
        palette = CATEGORY_PALETTES.get(cat, CATEGORY_PALETTES["Other"])
        idx = counters.get(cat, 0)
        colors.append(palette[idx % len(palette)])
        counters[cat] = idx + 1
    return colors


def parse_percent(text: Optional[str]) -> Optional[float]:
    """'40.00%' -> 40.0; None when the text carries no number."""
    if not text:
        return None
    m = re.search(r"-?\d+(?:\.\d+)?", text.replace(",", ""))
    return float(m.group(0)) if m else None


def format_number(v: Optional[float]) -> str:
    v = v or 0
    if float(v).is_integer():
        return f"{int(v):,}"
    return f"{v:,.2f}"


def _pct(part: float, total: float) -> float:
    return (part / total) * 100 if total > 0 else 0.0


def _discount_text(discount: Any) -> str:
    if discount in (None, ""):
        return "None"
    return str(discount)


def build_report_view(payload: ReportPayload) -> Dict[str, Any]:
    """Compute the JSON-ready view the in-page syncReport() writes into the templates."""
    rows = payload.rows
    summary = payload.summary
    round_name = payload.round_name or DEFAULT_ROUND_NAME

    total_pre = sum(r.pre_shares for r in rows)
    total_post = sum(r.post_shares for r in rows)
    colors = assign_colors(rows)

    table = []
    legend = []
    for row, color in zip(rows, colors):
        pre_pct = _pct(row.pre_shares, total_pre)
        post_pct = _pct(row.post_shares, total_post)
        table.append({
            "name": row.name,
            "category": row_category(row),
            "color": color,
            "badge": row.badge if (row.badge and not row.is_investor) else None,
            "badgeStyle": row.badge_style or "",
            "preShares": row.pre_shares,
            "postShares": row.post_shares,
            "preSharesText": format_number(row.pre_shares),
            "postSharesText": format_number(row.post_shares),
            "prePct": pre_pct,
            "postPct": post_pct,
            "prePctText": f"{pre_pct:.2f}%",
            "postPctText": f"{post_pct:.2f}%",
            "priceText": (summary.price_per_share or "—") if row.pre_shares > 0 else "—",
        })
        if post_pct >= _LEGEND_MIN_PCT:
            legend.append({"name": row.name, "color": color, "pctText": f"{post_pct:.1f}%"})

    founder_post = sum(r.post_shares for r in rows if r.is_founder)
    founder_pct = _pct(founder_post, total_post)

    safes = [r for r in rows if r.is_safe]
    safe_amount = payload.safe_amount or 0
    interpretation = [
        f"You are modeling a {round_name} round raising {summary.total_raised or '$0'} "
        f"at a {summary.post_money or '$0'} post-money valuation. Founder ownership changes "
        f"from {summary.ownership_pre or '0%'} to {founder_pct:.2f}% post-round.",
        f"{len(safes)} SAFE(s) totaling ${format_number(safe_amount)} will convert.",
        "Founders have dropped below 50% majority ownership."
        if founder_pct < 50 else "Founders maintain majority ownership.",
        f"The model includes an option pool top-up to reach the target of {payload.option_pool or '0%'}.",
    ]

    bar_pre = parse_percent(summary.ownership_pre)
    bar_post = parse_percent(summary.ownership_post)

    LOG.debug(f"view: {len(rows)} rows, total_pre={total_pre}, total_post={total_post}, founder={founder_pct:.2f}%")

    return {
        "roundName": round_name,
        "timestamp": payload.timestamp or "",
        "summary": {
            "ownershipPre": summary.ownership_pre or "",
            "ownershipPost": summary.ownership_post or "",
            "dilution": summary.dilution or "",
            "postMoney": summary.post_money or "",
            "pricePerShare": summary.price_per_share or "",
            "totalShares": summary.total_shares or "",
            "totalRaised": summary.total_raised or "",
        },
        "optionPool": payload.option_pool or "",
        "rows": table,
        "totalPre": total_pre,
        "totalPost": total_post,
        "totalPreText": format_number(total_pre),
        "totalPostText": format_number(total_post),
        "founderPostPct": founder_pct,
        "founderMajority": founder_pct >= 50,
        "interpretation": interpretation,
        "safes": [
            {
                "name": s.name,
                "badge": s.badge,
                "badgeStyle": s.badge_style or "",
                "investmentText": format_number(s.investment),
                "capText": format_number(s.cap),
                "discountText": _discount_text(s.discount),
                "typeText": s.safe_type or "Post-money",
            }
            for s in safes
        ],
        "safeTotalInvestmentText": "$" + format_number(sum(s.investment or 0 for s in safes)),
        "investors": [
            {"name": r.name, "investmentText": format_number(r.investment)}
            for r in rows if r.is_investor
        ],
        "legend": legend,
        "bar": {
            "prePct": bar_pre,
            "postPct": bar_post,
            "preTop": _BAR_FLOOR_PX - bar_pre * _BAR_PX_PER_PCT if bar_pre is not None else None,
            "postTop": _BAR_FLOOR_PX - bar_post * _BAR_PX_PER_PCT if bar_post is not None else None,
            "preLabel": f"After SAFE conversion & Before {round_name}",
            "postLabel": f"After SAFE conversion & {round_name}",
        },
    }
