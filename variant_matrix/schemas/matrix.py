"""
Schemas for variant matrix operations.
"""

from typing import Optional, List, Dict, Union, Literal
from pydantic import BaseModel, Field


class AttributeSchema(BaseModel):
    """Variant attribute schema."""
    name: str
    values: List[str] = Field(default_factory=list)
    optional: bool = False


class CombinationRowSchema(BaseModel):
    """Generated variant row schema."""
    id: str
    attributes: Dict[str, str] = Field(default_factory=dict)
    sku: str = ""
    price: float = 0
    mrp: float = 0
    stock: int = 0
    enabled: bool = True
    images: List[str] = Field(default_factory=list)
    placeholder: bool = False


class PersistedVariantSchema(BaseModel):
    """Variant already stored for the product (images may be a JSON string)."""
    id: Optional[int] = None
    sku: str = ""
    color: str = ""
    size: str = ""
    price: float = 0
    mrp: float = 0
    stock: int = 0
    images: Union[List[str], str, None] = None


class ProductVariantSchema(BaseModel):
    """Variant record sent to the storefront."""
    sku: str
    color: str
    size: str
    price: float
    mrp: float
    stock: int
    images: List[str] = Field(default_factory=list)


class SessionCreateRequest(BaseModel):
    """Request to open a matrix session."""
    product_name: str = ""
    existing_variants: List[PersistedVariantSchema] = Field(default_factory=list)


class SessionResponse(BaseModel):
    """Matrix session state."""
    session_id: str
    product_name: str
    step: Literal["define", "configure"]
    attributes: List[AttributeSchema]
    rows: List[CombinationRowSchema]
    uploading_row: Optional[str] = None
    created_at: str
    updated_at: str


class AttributeValueRequest(BaseModel):
    """Request to add an attribute value."""
    value: str


class RowUpdateRequest(BaseModel):
    """Request to set one editable field on a row."""
    field: Literal["sku", "price", "mrp", "stock"]
    value: Union[str, int, float, None] = None


class BulkUpdateRequest(BaseModel):
    """Request to set a numeric field on every row."""
    field: Literal["price", "mrp", "stock"]
    value: Union[str, int, float]


class BulkUpdateResponse(BaseModel):
    """Result of a bulk update."""
    field: str
    updated: int


class ImageUrlRequest(BaseModel):
    """Request to attach a single image URL."""
    url: str


class BatchImageUrlsRequest(BaseModel):
    """Request to attach newline-delimited image URLs."""
    urls: str


class RowImagesResponse(BaseModel):
    """Images of one row."""
    row_id: str
    images: List[str]


class UploadResponse(BaseModel):
    """Result of a multi-file upload."""
    row_id: str
    uploaded: int
    images: List[str]


class SaveRequest(BaseModel):
    """Request to persist enabled variants."""
    product_id: int


class SaveResponse(BaseModel):
    """Result of a save."""
    success: bool = True
    product_id: int
    saved: int
    variants: List[ProductVariantSchema]
