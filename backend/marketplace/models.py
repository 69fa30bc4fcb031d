from typing import List, Literal, Optional

from pydantic import BaseModel, Field, StrictInt


RoleName = Literal["customer", "service_provider", "admin"]

BookingStatus = Literal["requested", "confirmed", "completed", "rejected", "cancelled"]

DisputeStatus = Literal["pending", "under_review", "resolved", "dismissed"]


class Category(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None


class ProviderProfile(BaseModel):
    business_name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    address: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    zip_code: str = Field(min_length=1, max_length=20)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    profile_image_url: Optional[str] = Field(default=None, max_length=500)


class ServiceProvider(BaseModel):
    id: str
    owner_user_id: str
    business_name: str
    description: Optional[str] = None
    address: str
    city: str
    state: str
    zip_code: str
    phone_number: Optional[str] = None
    profile_image_url: Optional[str] = None
    is_approved: bool = False
    is_suspended: bool = False
    created_at: str
    updated_at: Optional[str] = None


class ServiceCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    price: float = Field(gt=0)
    price_unit: str = Field(default="per service", max_length=50)
    category_id: int
    is_available: bool = True
    estimated_duration_minutes: Optional[int] = Field(default=None, gt=0)


class ServiceUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    price: Optional[float] = Field(default=None, gt=0)
    price_unit: Optional[str] = Field(default=None, max_length=50)
    category_id: Optional[int] = None
    is_available: Optional[bool] = None
    estimated_duration_minutes: Optional[int] = Field(default=None, gt=0)


class Service(BaseModel):
    id: str
    provider_id: str
    category_id: int
    category_name: str = ""
    name: str
    description: Optional[str] = None
    price: float
    price_unit: str = "per service"
    is_available: bool = True
    estimated_duration_minutes: Optional[int] = None
    created_at: str
    updated_at: Optional[str] = None


class ProviderSummary(BaseModel):
    provider: ServiceProvider
    services: List[Service] = Field(default_factory=list)
    average_rating: Optional[float] = None
    total_reviews: int = 0


class Review(BaseModel):
    id: str
    service_request_id: str
    customer_id: str
    provider_id: str
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    is_visible: bool = True
    created_at: str
    updated_at: Optional[str] = None


class ProviderDetails(ProviderSummary):
    reviews: List[Review] = Field(default_factory=list)


class RatingSummary(BaseModel):
    provider_id: str
    average_rating: Optional[float] = None
    review_count: int = 0


class BookingCreateRequest(BaseModel):
    service_id: str
    service_address: str = Field(min_length=1, max_length=500)
    special_instructions: Optional[str] = Field(default=None, max_length=1000)


class BookingAcceptRequest(BaseModel):
    scheduled_date: Optional[str] = None


class BookingReasonRequest(BaseModel):
    cancellation_reason: Optional[str] = Field(default=None, max_length=500)


class BookingCompleteRequest(BaseModel):
    final_price: Optional[float] = Field(default=None, ge=0)


class ServiceRequest(BaseModel):
    id: str
    customer_id: str
    service_id: str
    provider_id: str
    service_name: str
    list_price: float
    service_address: str
    special_instructions: Optional[str] = None
    cancellation_reason: Optional[str] = None
    status: BookingStatus
    requested_date: str
    scheduled_date: Optional[str] = None
    confirmed_date: Optional[str] = None
    completed_date: Optional[str] = None
    cancelled_date: Optional[str] = None
    final_price: Optional[float] = None
    created_at: str
    updated_at: str


class ServiceRequestDetails(BaseModel):
    booking: ServiceRequest
    review: Optional[Review] = None
    can_review: bool = False


class BookingStatusHistoryEntry(BaseModel):
    id: str
    service_request_id: str
    actor_user_id: str
    from_status: str
    to_status: str
    note: str = ""
    created_at: str


class ReviewCreateRequest(BaseModel):
    service_request_id: str
    rating: StrictInt
    comment: Optional[str] = Field(default=None, max_length=1000)


class DisputeFileRequest(BaseModel):
    service_request_id: str
    reason: str = Field(min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=1000)


class DisputeAdvanceRequest(BaseModel):
    status: DisputeStatus
    admin_notes: Optional[str] = Field(default=None, max_length=1000)


class Dispute(BaseModel):
    id: str
    service_request_id: str
    reported_by_user_id: str
    reason: str
    description: Optional[str] = None
    status: DisputeStatus = "pending"
    admin_notes: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None
    resolved_at: Optional[str] = None


class AdminStats(BaseModel):
    total_providers: int
    pending_approvals: int
    suspended_providers: int
    total_services: int
    total_bookings: int
    pending_bookings: int
    total_reviews: int
    open_disputes: int


class AuthLoginRequest(BaseModel):
    user_id: str
    password: str
    role: Literal["customer", "service_provider"] = "customer"


class AuthLoginResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    user_id: str
    roles: List[RoleName]
    expires_at: str


class AuthMeResponse(BaseModel):
    user_id: str
    roles: List[RoleName]
