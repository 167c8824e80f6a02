from __future__ import annotations

import importlib.metadata

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    try:
        version = importlib.metadata.version("parley")
    except importlib.metadata.PackageNotFoundError:  # pragma: no cover
        version = "unknown"
    return {"status": "ok", "version": version}
