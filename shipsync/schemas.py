"""
Pydantic schemas for synchronizer inputs.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional, List


class ShipmentParty(BaseModel):
    name: str = Field(..., max_length=128)
    company: Optional[str] = Field(None, max_length=128)
    phone: Optional[str] = Field(None, max_length=32)
    email: Optional[str] = Field(None, max_length=128)
    country: Optional[str] = Field(None, max_length=64)
    province: Optional[str] = Field(None, max_length=64)
    city: Optional[str] = Field(None, max_length=64)
    address_line1: str = Field(..., max_length=256)
    address_line2: Optional[str] = Field(None, max_length=256)
    postal_code: Optional[str] = Field(None, max_length=32)


class ShipmentItem(BaseModel):
    name: str = Field(..., max_length=128)
    sku: Optional[str] = Field(None, max_length=64)
    hs_code: Optional[str] = Field(None, max_length=128)
    quantity: int = Field(..., ge=1)
    unit_weight_kg: float = Field(..., gt=0)
    declared_value: float = Field(..., gt=0)
    origin_country: Optional[str] = Field(None, max_length=128)


class ShipmentExtraService(BaseModel):
    code: str = Field(..., max_length=64)
    value: Optional[str] = Field(None, max_length=128)


class CreateShipmentRequest(BaseModel):
    reference_no: str = Field(..., min_length=1, max_length=64)
    shipping_method: str = Field(..., max_length=128)
    country_code: str = Field(..., max_length=8)
    weight_kg: float = Field(..., gt=0)
    pieces: int = Field(..., ge=1)
    consignee: ShipmentParty
    shipper: ShipmentParty
    items: List[ShipmentItem] = Field(default_factory=list)
    extra_services: Optional[List[ShipmentExtraService]] = None
    remarks: Optional[str] = Field(None, max_length=256)
    label_type: Optional[str] = Field(None, max_length=64)
    # Merged over the generated createOrder params
    additional_payload: Optional[Dict[str, Any]] = None


class ShipmentUpdate(BaseModel):
    """Manual correction of stored fields; unset fields stay as they are."""

    shipping_method: Optional[str] = Field(None, max_length=128)
    country_code: Optional[str] = Field(None, max_length=8)
    weight_kg: Optional[float] = Field(None, gt=0)
    pieces: Optional[int] = Field(None, ge=1)
    label_type: Optional[str] = Field(None, max_length=64)
    status: Optional[str] = None
    order_code: Optional[str] = Field(None, max_length=128)
    tracking_number: Optional[str] = Field(None, max_length=128)
