from fastapi.responses import JSONResponse
from pydantic import BaseModel

import uuid
import decimal
from datetime import date, datetime


def serialize_data(obj):
    """Make records, models and database scalars JSON friendly"""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True)
    if isinstance(obj, dict):
        return {k: serialize_data(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [serialize_data(item) for item in obj]
    if isinstance(obj, uuid.UUID):
        return str(obj)
    if isinstance(obj, decimal.Decimal):
        return float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj


def _envelope(status: str, message: str, data, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": status, "message": message, "data": data},
    )


def success_response(data=None, message="Success", status_code=200):
    """Return standardized success response"""
    return _envelope("success", message, serialize_data(data), status_code)


def error_response(message, status_code=400):
    """Return standardized error response"""
    return _envelope("error", message, None, status_code)
