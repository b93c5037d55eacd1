"""
Data models and payload validation for location pings.

``validate_submission`` turns an untrusted JSON body into a typed
``LocationSubmission`` or raises the validation AppException. Coordinates
are the only hard requirement; accuracy and timestamp degrade to "absent"
when they cannot be understood.
"""

import math
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator

from errors.exceptions import INVALID_COORDINATES_MESSAGE, invalid_request, validation_error


INVALID_TOKEN_MESSAGE = "invalid token"

_TIMESTAMP_ADAPTER = TypeAdapter(datetime)


def coerce_finite_number(value: Any) -> Optional[float]:
    """
    Coerce a JSON value to a finite float.

    Ints, floats and decimal strings are accepted. Booleans, ``None``,
    NaN, infinities, strings with digit-group underscores and anything
    else give ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str) and "_" not in value:
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LocationSubmission(BaseModel):
    """
    A validated location ping, before it is stored.

    Attributes:
        token: Opaque client identifier, None when the ping is ungrouped
        latitude: Finite latitude
        longitude: Finite longitude
        accuracy: Reported accuracy, None when absent or not numeric
        timestamp: Caller-supplied time in UTC, None to use the server clock
    """

    model_config = ConfigDict(extra="ignore")

    token: Optional[str] = None
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: Optional[datetime] = None

    @field_validator("token", mode="before")
    @classmethod
    def normalize_token(cls, v: Any) -> Optional[str]:
        if v is None or v == "":
            return None
        if isinstance(v, str):
            return v
        if isinstance(v, (bool, int, float)):
            return str(v)
        raise ValueError("token must be a string")

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def validate_coordinate(cls, v: Any) -> float:
        number = coerce_finite_number(v)
        if number is None:
            raise ValueError("must be a finite number")
        return number

    @field_validator("accuracy", mode="before")
    @classmethod
    def coerce_accuracy(cls, v: Any) -> Optional[float]:
        return coerce_finite_number(v)

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> Optional[datetime]:
        """
        Parse ISO-8601 strings or epoch milliseconds; anything else means "now".

        Zero and dates that fall outside the representable range once
        converted to UTC also mean "now".
        """
        if v is None or v == "" or isinstance(v, bool):
            return None
        try:
            if isinstance(v, (int, float)):
                if v == 0:
                    return None
                return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
            return as_utc(_TIMESTAMP_ADAPTER.validate_python(v))
        except (ValidationError, ValueError, OverflowError, OSError):
            return None


class LocationSample(BaseModel):
    """
    A stored location sample as returned to API callers.

    Attributes:
        id: Store-assigned unique identifier
        token: Opaque client identifier, None when ungrouped
        latitude: Latitude
        longitude: Longitude
        accuracy: Reported accuracy, None when absent
        timestamp: When the sample was taken (UTC)
    """

    id: str
    token: Optional[str] = None
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return as_utc(v)


class SubmitResult(BaseModel):
    """Outcome of a submit: the sample's id and whether it was suppressed."""

    id: str
    duplicate: bool = False


def validate_submission(payload: Any) -> LocationSubmission:
    """
    Validate a location ping body.

    Args:
        payload: The decoded JSON body. Anything other than an object is
            treated as an empty object.

    Returns:
        The validated LocationSubmission

    Raises:
        AppException: VALIDATION_ERROR "invalid lat/lon" when a coordinate
            is missing or not a finite number, INVALID_REQUEST
            "invalid token" when the token is not a scalar.
    """
    if not isinstance(payload, dict):
        payload = {}

    try:
        return LocationSubmission.model_validate(payload)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        fields = {str(err["loc"][0]) for err in errors if err.get("loc")}
        details = {"validation_errors": [
            {"field": ".".join(str(loc) for loc in err.get("loc", ())), "error": err.get("msg")}
            for err in errors
        ]}
        if fields & {"latitude", "longitude"} or not fields:
            raise validation_error(INVALID_COORDINATES_MESSAGE, details=details) from e
        raise invalid_request(INVALID_TOKEN_MESSAGE, details=details) from e
