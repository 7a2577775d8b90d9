from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StringConstraints
from pydantic.alias_generators import to_camel

from fleetlog.services.roles import Role

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Km = Union[int, float]


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire and in the store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TripStatusEnum(str, Enum):
    in_progress = "in_progress"
    completed = "completed"


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    role: Role = Role.driver
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or "Unknown"


class SignupRequest(BaseModel):
    email: NonEmptyStr
    password: NonEmptyStr
    name: NonEmptyStr
    role: Literal["driver", "admin"]


class UserSummary(BaseModel):
    id: str
    email: Optional[str] = None
    role: Role
    name: str
    created_at: Optional[str] = None
    last_sign_in_at: Optional[str] = None


class UsersResponse(BaseModel):
    users: list[UserSummary]


class RoleUpdateRequest(BaseModel):
    role: Role


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------

class Trip(CamelModel):
    """
    Stored trip record. Fields other than id, vehiclePlate and status are
    lenient so older or hand-edited records still count for availability.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow", coerce_numbers_to_str=True,
    )

    id: str
    user_id: Optional[str] = None
    user_name: Optional[str] = "Unknown"
    vehicle_plate: str
    vehicle_color: Optional[str] = None
    vehicle_model: Optional[str] = None
    km_start: Optional[Km] = 0
    time_start: Optional[str] = None
    destination: Optional[str] = None
    km_end: Optional[Km] = None
    time_end: Optional[str] = None
    status: TripStatusEnum
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


class TripCreateRequest(CamelModel):
    vehicle_plate: NonEmptyStr
    vehicle_color: NonEmptyStr
    vehicle_model: NonEmptyStr
    km_start: int = Field(..., ge=0)
    time_start: NonEmptyStr
    destination: NonEmptyStr


class TripCompleteRequest(CamelModel):
    km_end: int = Field(..., gt=0)
    time_end: NonEmptyStr


class TripResponse(BaseModel):
    trip: Trip


class TripListResponse(BaseModel):
    trips: list[Trip]


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Vehicles
# ---------------------------------------------------------------------------

class Vehicle(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    plate: str
    brand: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None
    year: Optional[str] = None
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None
    fuel_level: Optional[int] = None
    last_fuel_update: Optional[str] = None
    last_fuel_update_by: Optional[str] = None


class VehicleWithStatus(Vehicle):
    is_available: bool
    active_trip: Optional[Trip] = None


class VehicleCreateRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    plate: NonEmptyStr
    brand: NonEmptyStr
    model: NonEmptyStr
    color: NonEmptyStr
    year: NonEmptyStr


class VehicleUpdateRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    plate: Optional[NonEmptyStr] = None
    brand: Optional[NonEmptyStr] = None
    model: Optional[NonEmptyStr] = None
    color: Optional[NonEmptyStr] = None
    year: Optional[NonEmptyStr] = None


class FuelUpdateRequest(BaseModel):
    level: int = Field(..., ge=0, le=100, strict=True)


class VehicleResponse(BaseModel):
    vehicle: Vehicle


class FuelUpdateResponse(SuccessResponse):
    vehicle: Vehicle


class VehicleListResponse(BaseModel):
    vehicles: list[VehicleWithStatus]


class RosterListResponse(BaseModel):
    vehicles: list[Vehicle]


class LastTripResponse(CamelModel):
    last_odometer: Optional[Km] = None
    last_trip_id: Optional[str] = None
    completed_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

class MaintenanceStatus(CamelModel):
    plate: str
    total_km: Km
    last_oil_change: int
    km_since_oil_change: Km
    needs_oil_change: bool


class MaintenanceAlertsResponse(BaseModel):
    alerts: list[MaintenanceStatus]


class OilChangeRequest(CamelModel):
    current_km: int = Field(..., gt=0)


class MaintenanceHistoryEntry(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    plate: str
    type: str = "oil_change"
    km: int
    date: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    notes: Optional[str] = None


class MaintenanceHistoryResponse(BaseModel):
    history: list[MaintenanceHistoryEntry]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class AdminRegistrationSetting(BaseModel):
    enabled: StrictBool


class AdminRegistrationUpdateResponse(AdminRegistrationSetting):
    success: bool = True
