"""Request and response schemas for the tree, archive and session endpoints."""

from calltree.models import CamelModel

# -- Requests --


class AddNodeRequest(CamelModel):
    title: str | None = None


class RenameNodeRequest(CamelModel):
    title: str | None = None


class RestoreSessionRequest(CamelModel):
    """Request body for POST /api/session/restore."""

    snapshot_id: str


# -- Responses --


class HealthResponse(CamelModel):
    status: str
    version: str
    session_id: str | None = None
