"""API payload assembly for item listings with embedded matches"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Sequence

from libs.items.records import ItemRecord


def attach_potential_matches(payload: Dict[str, Any], outcome) -> Dict[str, Any]:
    """Embed an outcome's matches into an item payload.

    A failed outcome still yields the item data, with an empty match list
    and ``matchingFailed`` set.
    """
    payload = dict(payload)
    payload["potentialMatches"] = [m.to_payload() for m in outcome.matches]
    if outcome.matching_failed:
        payload["matchingFailed"] = True
    return payload


def serialize_items(
    records: Sequence[ItemRecord],
    outcomes: Optional[Iterable] = None,
) -> Dict[str, Any]:
    """List response: ``{"success": true, "count": n, "data": [...]}``

    ``outcomes`` must line up with ``records`` when given.
    """
    data: List[Dict[str, Any]] = [r.to_payload() for r in records]
    if outcomes is not None:
        outcomes = list(outcomes)
        if len(outcomes) != len(data):
            raise ValueError("outcomes must match records one to one")
        data = [attach_potential_matches(p, o) for p, o in zip(data, outcomes)]
    return {"success": True, "count": len(data), "data": data}
