"""
GET /patterns
Lists the loaded error patterns in priority order.
"""
from fastapi import APIRouter

from buildfix.parser.patterns import default_pattern_table

router = APIRouter(tags=["Repair"])


@router.get("/patterns")
async def list_patterns():
    return [
        {
            "priority": position,
            "id": pattern.id,
            "category": pattern.category.value,
            "confidence": pattern.confidence.value,
            "action": pattern.action,
            "description": pattern.description,
        }
        for position, pattern in enumerate(default_pattern_table())
    ]
