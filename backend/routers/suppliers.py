from typing import List

from fastapi import APIRouter, Request, status

from schemas.suppliers import SupplierCreate, SupplierRead

router = APIRouter()


@router.get("/", response_model=List[SupplierRead])
async def list_suppliers(request: Request):
    return await request.app.state.suppliers.list_suppliers()


@router.post("/", response_model=SupplierRead, status_code=status.HTTP_201_CREATED)
async def create_supplier(payload: SupplierCreate, request: Request):
    return await request.app.state.suppliers.create_supplier(payload)
