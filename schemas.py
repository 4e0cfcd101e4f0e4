"""
Schemas for the Marketplace Admin & Vendor Dashboard

Record models mirror entities owned by the remote marketplace API. The
dashboard never treats them as authoritative: ids arrive as ``_id`` and any
field the API adds is kept as-is.

Form models validate what a screen is about to submit. A form that fails to
validate never reaches the network.
"""

from datetime import date, datetime
from typing import Annotated, Any, Generic, List, Literal, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator


Role = Literal["admin", "vendor", "user"]
CourseLevel = Literal["beginner", "intermediate", "advanced"]
OrderStatus = Literal[
    "pending", "approved", "processing", "shipped", "delivered", "cancelled", "rejected"
]
ReportStatus = Literal["pending", "resolved", "rejected"]
TicketStatus = Literal["pending", "answered"]
Visibility = Literal["public", "private"]

ORDER_STATUSES = (
    "pending", "approved", "processing", "shipped", "delivered", "cancelled", "rejected"
)


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


NonBlank = Annotated[str, AfterValidator(_not_blank)]


# Remote records
class Record(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., alias="_id")


class User(Record):
    name: str
    email: EmailStr
    role: Role = "user"
    banned: bool = Field(False, alias="isBanned")
    ban_reason: Optional[str] = Field(None, alias="banReason")
    ban_end_date: Optional[datetime] = Field(None, alias="banEndDate")
    business_name: Optional[str] = Field(None, alias="businessName")
    phone: Optional[str] = None
    address: Optional[str] = None


class CoursePrice(BaseModel):
    usd: float = Field(0.0, ge=0)
    npr: float = Field(0.0, ge=0)


class CourseNote(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    pdf: str = ""  # stored file path, video or pdf
    premium: bool = False
    description: str = ""
    duration: str = ""
    sort_order: int = Field(0, alias="sortOrder")


class Course(Record):
    title: str
    description: str = ""
    category_id: Optional[str] = Field(None, alias="categoryId")
    level: CourseLevel = "beginner"
    price: CoursePrice = Field(default_factory=CoursePrice)
    thumbnail: Optional[str] = None
    notes: List[CourseNote] = []


class Category(Record):
    name: str
    description: str = ""
    parent_category: Optional[str] = Field(None, alias="parentCategory")
    sort_order: int = Field(0, alias="sortOrder")
    icon: str = ""
    color: str = "#4A90E2"
    course_count: int = Field(0, alias="courseCount")
    product_count: int = Field(0, alias="productCount")


class Product(Record):
    name: str
    description: str = ""
    content: str = ""
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    category_id: Optional[str] = Field(None, alias="categoryId")
    images: List[str] = []


class OrderItem(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    product_id: Optional[str] = Field(None, alias="productId")
    name: str = ""
    price: float = 0.0
    quantity: int = Field(1, ge=1)


class Customer(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class Payment(BaseModel):
    model_config = ConfigDict(extra="allow")

    method: Optional[str] = None
    status: Optional[str] = None
    amount: float = 0.0


class StatusHistoryEntry(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    status: OrderStatus
    timestamp: datetime
    actor: Optional[str] = Field(None, alias="updatedBy")
    note: Optional[str] = None


class Order(Record):
    order_number: Optional[str] = Field(None, alias="orderNumber")
    status: OrderStatus = "pending"
    items: List[OrderItem] = []
    customer: Customer = Field(default_factory=Customer)
    payment: Payment = Field(default_factory=Payment)
    vendor_notes: str = Field("", alias="vendorNotes")
    tracking_number: str = Field("", alias="trackingNumber")
    estimated_delivery: Optional[datetime] = Field(None, alias="estimatedDelivery")
    status_history: List[StatusHistoryEntry] = Field([], alias="statusHistory")


class Report(Record):
    reporter: Any = None
    reportee: Any = None
    reason: str = ""
    status: ReportStatus = "pending"
    response: Optional[str] = None


class SupportTicket(Record):
    user: Any = None
    subject: str = ""
    message: str = ""
    status: TicketStatus = "pending"
    response: Optional[str] = None


# Pagination
T = TypeVar("T")


class ListQuery(BaseModel):
    search: str = ""
    filter: str = ""  # category id or status, depending on the screen
    level: str = ""
    sort_by: str = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"


class Page(BaseModel, Generic[T]):
    items: List[T] = []
    page: int = 0
    total_pages: int = 1
    has_more: bool = False
    next_cursor: Optional[str] = None


# Forms
class LoginForm(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class ProductForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: NonBlank
    description: NonBlank
    content: NonBlank
    price: float = Field(..., gt=0)
    stock: int = Field(..., ge=0)
    category_id: NonBlank = Field(..., alias="categoryId")
    images: List[str] = []


class StockUpdate(BaseModel):
    stock: int = Field(..., ge=0)


class CourseNoteForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: NonBlank
    premium: bool = False
    description: str = ""
    duration: str = ""
    sort_order: int = Field(0, ge=0, alias="sortOrder")
    pdf: str = ""


class CourseForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: NonBlank
    description: NonBlank
    category_id: NonBlank = Field(..., alias="categoryId")
    level: CourseLevel = "beginner"
    price: CoursePrice = Field(default_factory=CoursePrice)
    thumbnail: str = ""
    notes: List[CourseNoteForm] = []


class CategoryForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: NonBlank
    description: str = ""
    icon: str = ""
    color: str = "#4A90E2"
    parent_category: Optional[str] = Field(None, alias="parentCategory")
    sort_order: int = Field(0, ge=0, alias="sortOrder")

    @field_validator("parent_category")
    @classmethod
    def empty_parent_is_root(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class VendorForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: NonBlank
    email: EmailStr
    password: str = Field(..., min_length=6)
    business_name: NonBlank = Field(..., alias="businessName")
    phone: Optional[str] = None
    address: Optional[str] = None


class BanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: NonBlank = Field(..., alias="userId")
    duration: int = Field(..., ge=1, description="Ban length in days")
    reason: NonBlank


class ContentDeletion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_id: NonBlank = Field(..., alias="contentId")
    reason: NonBlank


class ReportResolution(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_id: NonBlank = Field(..., alias="reportId")
    status: Literal["resolved", "rejected"] = "resolved"
    response: NonBlank


class TicketAnswer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ticket_id: NonBlank = Field(..., alias="ticketId")
    response: NonBlank


class OrderUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: OrderStatus
    vendor_notes: str = Field("", alias="vendorNotes")
    tracking_number: str = Field("", alias="trackingNumber")
    estimated_delivery: Optional[date] = Field(None, alias="estimatedDelivery")
