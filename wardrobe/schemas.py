"""
Pydantic schemas for the wardrobe API.

Request models keep required fields optional so that missing values surface
as ``ValidationError`` from the handlers with the API's own error body.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class FindOrCreateRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=320)


class UserSummary(BaseModel):
    id: str
    email: str


class FindOrCreateResponse(BaseModel):
    success: bool = True
    user: UserSummary


class AddItemRequest(BaseModel):
    category: Optional[str] = None
    imageUrl: Optional[str] = None
    name: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[Union[str, int, float]] = None


class Item(BaseModel):
    id: str
    filename: str
    name: str = ""
    brand: str = ""
    price: str = ""
    addedAt: datetime


class AddItemResponse(BaseModel):
    success: bool = True
    category: str
    item: Item


class ItemsResponse(BaseModel):
    tops: list[Item]
    bottoms: list[Item]
    shoes: list[Item]
    accessories: list[Item]
    dresses: list[Item]


class DeleteItemRequest(BaseModel):
    category: Optional[str] = None
    itemId: Optional[str] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class OutfitRequest(BaseModel):
    outfit: Optional[dict[str, Any]] = None
    date: Optional[Union[datetime, int, float, str]] = None


class OutfitParts(BaseModel):
    tops: list[Any] = Field(default_factory=list)
    bottoms: list[Any] = Field(default_factory=list)
    dresses: list[Any] = Field(default_factory=list)
    shoes: list[Any] = Field(default_factory=list)
    accessories: list[Any] = Field(default_factory=list)


class Crush(BaseModel):
    outfit: OutfitParts
    date: Optional[datetime] = None


class SyncRequest(BaseModel):
    # Loosely typed: malformed entries are skipped by the sync engine.
    items: Optional[dict[str, Any]] = None
    crushes: Optional[list[Any]] = None


class SyncCounts(BaseModel):
    id: str
    email: str
    tops: int
    bottoms: int
    shoes: int
    accessories: int
    dresses: int
    outfits: int
    crushes: int


class SyncResponse(BaseModel):
    success: bool = True
    userData: SyncCounts
    inserted: int
    skipped: int


class HealthResponse(BaseModel):
    status: Literal["ok"]
    backend: str


class AdminData(BaseModel):
    collection: Optional[str] = None
    items: Optional[list[dict[str, Any]]] = None


class AdminAddDataRequest(BaseModel):
    email: Optional[str] = None
    data: Optional[AdminData] = None


class AdminAddDataResponse(BaseModel):
    success: bool = True
    message: str
    user: dict[str, Any]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
