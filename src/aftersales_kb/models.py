"""Knowledge item and API request/response models"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_VEHICLE_MODEL = "通用"
DEFAULT_PROBLEM_LEVEL = "通用"
DEFAULT_COMMON_MISTAKES = "/"


class KBItem(BaseModel):
    """After-sales Q&A entry as stored locally"""

    model_config = ConfigDict(extra="ignore")

    id: str
    sku: str
    category: str = ""
    vehicle_model: str = DEFAULT_VEHICLE_MODEL
    problem_level: str = DEFAULT_PROBLEM_LEVEL
    problem_type: str = ""
    problem_description: str
    standard_answer: str = ""
    internal_solution: str = ""
    common_mistakes: str = DEFAULT_COMMON_MISTAKES
    update_time: str = ""
    attachments: int = 0
    attachment_urls: List[str] = Field(default_factory=list)


class KBItemCreate(BaseModel):
    sku: str = Field(..., min_length=1, description="Product SKU")
    category: str = ""
    vehicle_model: str = DEFAULT_VEHICLE_MODEL
    problem_level: str = DEFAULT_PROBLEM_LEVEL
    problem_type: str = ""
    problem_description: str = Field(..., min_length=1, description="Customer-facing problem description")
    standard_answer: str = Field(default="", description="Standard answer (external)")
    internal_solution: str = Field(default="", description="Internal solution / operation steps")
    common_mistakes: str = DEFAULT_COMMON_MISTAKES
    attachment_urls: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "sku": "RK-2041",
                "category": "行李架",
                "vehicle_model": "RAV4 2020",
                "problem_level": "P2",
                "problem_type": "安装问题",
                "problem_description": "行李架安装不上，孔位对不齐",
                "standard_answer": "请确认车型年份，2019 款需使用转接支架。",
                "internal_solution": "1. 核对订单车型 2. 补发转接支架",
                "common_mistakes": "不要强行扩孔",
            }
        }


class KBItemUpdate(BaseModel):
    """Partial update: only fields that are set are applied"""

    sku: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    vehicle_model: Optional[str] = None
    problem_level: Optional[str] = None
    problem_type: Optional[str] = None
    problem_description: Optional[str] = Field(default=None, min_length=1)
    standard_answer: Optional[str] = None
    internal_solution: Optional[str] = None
    common_mistakes: Optional[str] = None
    attachment_urls: Optional[List[str]] = None


class QueryRequest(BaseModel):
    query: str = Field(..., description="User query", min_length=1)
    top_k: int = Field(default=50, ge=1, le=500, description="Number of results")


class QueryResultItem(BaseModel):
    score: float
    item: KBItem


class QueryResponse(BaseModel):
    query: str
    results: List[QueryResultItem]
    total: int


class ItemListResponse(BaseModel):
    items: List[KBItem]
    total: int
    page: int
    page_size: int
    total_pages: int


class BatchDeleteRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class DeleteResponse(BaseModel):
    deleted: List[str]
    message: str


class ImportResponse(BaseModel):
    parsed: int = Field(..., description="Rows parsed successfully")
    imported: int = Field(..., description="Items actually added")
    mode: Literal["append", "dedupe"]
    errors: List[str] = Field(default_factory=list, description="Per-row errors (skipped rows)")
    message: str
