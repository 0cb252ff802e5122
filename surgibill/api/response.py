# FILE: surgibill/api/response.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _plain(data: Any) -> Any:
    # line items carry computed fields (is_from_master) that must be serialised
    if isinstance(data, BaseModel):
        return data.model_dump()
    if isinstance(data, (list, tuple)):
        return [_plain(x) for x in data]
    return data


def ok(
    data: Any = None,
    *,
    meta: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> JSONResponse:
    """
    {"ok": true, "data": ..., "meta": {...}}

    ``data`` may be a pydantic model or a list of them.
    """
    payload: Dict[str, Any] = {"ok": True, "data": _plain(data)}
    if meta is not None:
        payload["meta"] = meta
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def err(
    msg: str = "Something went wrong",
    *,
    status_code: int = 400,
    code: Optional[str] = None,
    details: Any = None,
) -> JSONResponse:
    """{"ok": false, "error": {"msg": ..., "code": ..., "details": ...}}"""
    payload: Dict[str, Any] = {
        "ok": False,
        "error": {
            "msg": msg,
            "code": code,
            "details": details,
        },
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))
