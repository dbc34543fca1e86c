"""
Version information endpoints.
"""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from orderwatch.version import VERSION, version_info, version_string

router = APIRouter()


class VersionResponse(BaseModel):
    """Full version information response."""

    version: str
    python_version: str
    git_commit: str | None
    git_branch: str | None
    build_date: str
    environment: str


class ShortVersionResponse(BaseModel):
    """Short version response."""

    version: str
    version_string: str


@router.get(
    "",
    response_model=VersionResponse,
    summary="Get version information",
    description="Returns version information including git metadata and build date",
)
async def get_version() -> dict[str, Any]:
    return version_info()


@router.get(
    "/short",
    response_model=ShortVersionResponse,
    summary="Get short version",
)
async def get_version_short() -> dict[str, str]:
    return {
        "version": VERSION,
        "version_string": version_string(),
    }
