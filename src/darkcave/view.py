from __future__ import annotations

from typing import Dict, Optional

from .constants import RECENT_LOG_DISPLAY
from .engine import Session
from .helpers import get_resource_limit, get_total_luck
from .models import recent_log


def _nonzero(section: Dict) -> Dict:
    return {k: v for k, v in (section or {}).items() if v}


def build_view_model(session: Session, now: Optional[int] = None) -> Dict:
    """Build a plain-dict view of the session for rendering or JSON dumps."""
    now = session.clock() if now is None else now
    state = session.state

    actions = []
    for card in session.list_cards(now):
        actions.append({
            "id": card.action_id,
            "label": card.label,
            "category": card.category,
            "tier": card.tier,
            "available": card.available,
            "cost": card.cost_text,
            "cooldown_ms": card.cooldown_remaining_ms,
            "why_locked": card.why_locked,
            "missing": list(card.missing_requirements),
        })

    return {
        "resources": _nonzero(state.get("resources")),
        "resource_limit": get_resource_limit(state),
        "stats": {**(state.get("stats") or {}), "totalLuck": get_total_luck(state)},
        "flags": sorted(k for k, v in (state.get("flags") or {}).items() if v is True),
        "tools": sorted(k for k, v in (state.get("tools") or {}).items() if v),
        "weapons": sorted(k for k, v in (state.get("weapons") or {}).items() if v),
        "relics": sorted(k for k, v in (state.get("relics") or {}).items() if v),
        "buildings": _nonzero(state.get("buildings")),
        "villagers": _nonzero(state.get("villagers")),
        "events": sorted((state.get("events") or {}).keys()),
        "play_time_ms": session.play_time_at(now),
        "recent_log": [
            {"message": e.message, "type": e.type, "timestamp": e.timestamp}
            for e in recent_log(state, RECENT_LOG_DISPLAY)
        ],
        "actions": actions,
    }
