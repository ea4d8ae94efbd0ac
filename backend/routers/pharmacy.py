from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, Response, status

from schemas.pharmacy import (
    DispenseRecordRead,
    DispenseRequest,
    DispenseResult,
    PharmacyCategory,
    PharmacyItemCreate,
    PharmacyItemRead,
    PharmacyItemUpdate,
    ReplenishRequest,
)

router = APIRouter()


# Fixed paths first so they are not captured by /items/{item_id}
@router.get("/items/low-stock", response_model=List[PharmacyItemRead])
async def list_low_stock(request: Request):
    return await request.app.state.ledger.list_low_stock()


@router.get("/items/expiring", response_model=List[PharmacyItemRead])
async def list_expiring(request: Request, within_days: Optional[int] = Query(None)):
    return await request.app.state.ledger.list_expiring(within_days)


@router.get("/items", response_model=List[PharmacyItemRead])
async def list_items(request: Request, category: Optional[PharmacyCategory] = Query(None)):
    return await request.app.state.ledger.list_items(category)


@router.post("/items", response_model=PharmacyItemRead, status_code=status.HTTP_201_CREATED)
async def create_item(payload: PharmacyItemCreate, request: Request):
    return await request.app.state.catalog.create_item(payload)


@router.get("/items/{item_id}", response_model=PharmacyItemRead)
async def get_item(item_id: UUID, request: Request):
    return await request.app.state.ledger.get_item(item_id)


@router.patch("/items/{item_id}", response_model=PharmacyItemRead)
async def update_item(item_id: UUID, payload: PharmacyItemUpdate, request: Request):
    return await request.app.state.catalog.update_item(item_id, payload)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(item_id: UUID, request: Request):
    await request.app.state.catalog.delete_item(item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/items/{item_id}/dispense", response_model=DispenseResult, status_code=status.HTTP_201_CREATED)
async def dispense_item(item_id: UUID, payload: DispenseRequest, request: Request):
    return await request.app.state.processor.dispense(item_id, payload.quantity, payload.reason)


@router.post("/items/{item_id}/replenish", response_model=PharmacyItemRead)
async def replenish_item(item_id: UUID, payload: ReplenishRequest, request: Request):
    return await request.app.state.ledger.replenish(item_id, payload.quantity)


@router.get("/dispenses", response_model=List[DispenseRecordRead])
async def list_dispenses(
    request: Request,
    start: datetime = Query(..., description="Inclusive, timezone-aware"),
    end: datetime = Query(..., description="Exclusive, timezone-aware"),
):
    return await request.app.state.history.query_range(start, end)
