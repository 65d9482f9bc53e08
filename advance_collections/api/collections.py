"""
Collection run endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException

from .dependencies import CollectionsSystem, get_collections_system, http_error, parse_date
from .schemas import RunCollectionsRequest
from ..exceptions import RunInProgressError
from ..fees import calculate_late_fee


router = APIRouter()


@router.post("/run")
async def run_collections(
    request: Optional[RunCollectionsRequest] = None,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Run the daily collection cycle now"""
    as_of = parse_date(request.as_of if request else None)
    try:
        summary = await system.job.run(as_of)
    except RunInProgressError as e:
        raise http_error(e)
    return summary.to_dict()


@router.get("/runs")
async def list_runs(
    run_date: Optional[str] = None,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Persisted run summaries, most recent first"""
    runs = system.job.list_runs(parse_date(run_date))
    return {"runs": runs, "count": len(runs)}


@router.get("/targets")
async def get_targets(
    as_of: Optional[str] = None,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Advances that would be contacted on the given day"""
    day = parse_date(as_of) or date.today()
    targets = system.selector.get_collection_targets(day)
    return {"as_of": day.isoformat(), "count": len(targets), "targets": [t.to_dict() for t in targets]}


@router.get("/late-fee")
async def get_late_fee(
    amount: str,
    days_overdue: int,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Late fee on an amount after a number of overdue days"""
    try:
        fee = calculate_late_fee(amount, days_overdue, system.fee_policy, system.currency)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return fee.to_dict()
