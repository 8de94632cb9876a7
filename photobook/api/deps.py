"""Dependency injection utilities for API endpoints.

This module provides common dependencies used across API routes,
such as the photo pipeline and the uploading owner.
"""

import uuid
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from photobook.core.exceptions import ValidationException
from photobook.services.pipeline import PhotoPipeline


def get_pipeline(request: Request) -> PhotoPipeline:
    """Return the pipeline created by the application lifespan."""
    return request.app.state.pipeline


def get_owner_id(
    x_owner_id: Annotated[Optional[str], Header(description="Uploading user id")] = None,
) -> uuid.UUID:
    """Parse the owner of an upload from the ``X-Owner-Id`` header.

    Raises:
        ValidationException: If the header is missing or not a UUID.
    """
    if not x_owner_id:
        raise ValidationException("Missing X-Owner-Id header")
    try:
        return uuid.UUID(x_owner_id)
    except ValueError:
        raise ValidationException(
            "X-Owner-Id must be a UUID",
            details={"x_owner_id": x_owner_id},
        )


# Type aliases for endpoint signatures
Pipeline = Annotated[PhotoPipeline, Depends(get_pipeline)]
OwnerId = Annotated[uuid.UUID, Depends(get_owner_id)]
