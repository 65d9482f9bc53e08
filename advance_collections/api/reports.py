"""
Reporting endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends

from .dependencies import CollectionsSystem, get_collections_system, parse_date


router = APIRouter()


@router.get("/aging")
async def get_aging_report(
    as_of: Optional[str] = None,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Outstanding balances by days past due"""
    return system.aging.generate(parse_date(as_of)).to_dict()
