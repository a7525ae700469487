"""FastAPI routes exposing the tree service to the presentation layer."""

from fastapi import APIRouter, Depends, HTTPException, status

from calltree.models import TreeState
from calltree.sessions.store import (
    PersistenceError,
    SessionNotFoundError,
    SnapshotCorruptError,
    SnapshotNotFoundError,
)
from calltree.trees.machine import DeleteResult, NodeNotFoundError, RootNodeProtectedError
from calltree.trees.schemas import AddNodeRequest, RenameNodeRequest, RestoreSessionRequest
from calltree.trees.service import TreeService

router = APIRouter(prefix="/api", tags=["tree"])


def get_tree_service() -> TreeService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("TreeService not initialized")


def _storage_failed(exc: PersistenceError | SnapshotCorruptError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# -- Tree --


@router.get("/tree")
async def get_state(
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    return await service.get_state()


@router.post("/tree/nodes/{node_id}/children", status_code=status.HTTP_201_CREATED)
async def add_child(
    node_id: str,
    request: AddNodeRequest,
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    try:
        return await service.add_child(node_id, request.title)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")


@router.post("/tree/nodes/{node_id}/siblings", status_code=status.HTTP_201_CREATED)
async def add_sibling(
    node_id: str,
    request: AddNodeRequest,
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    try:
        return await service.add_sibling(node_id, request.title)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")


@router.patch("/tree/nodes/{node_id}")
async def rename_node(
    node_id: str,
    request: RenameNodeRequest,
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    try:
        return await service.rename_node(node_id, request.title)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")


@router.post("/tree/nodes/{node_id}/focus")
async def focus_node(
    node_id: str,
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    try:
        return await service.focus_node(node_id)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")


@router.post("/tree/nodes/{node_id}/complete")
async def complete_node(
    node_id: str,
    service: TreeService = Depends(get_tree_service),
) -> DeleteResult:
    try:
        return await service.complete_node(node_id)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    except RootNodeProtectedError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/tree/nodes/{node_id}")
async def delete_node(
    node_id: str,
    service: TreeService = Depends(get_tree_service),
) -> DeleteResult:
    try:
        return await service.delete_node(node_id)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    except RootNodeProtectedError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/tree/undo")
async def undo(
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    return await service.undo()


@router.post("/tree/redo")
async def redo(
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    return await service.redo()


# -- Archive --


@router.get("/archive/sessions")
async def list_sessions(
    service: TreeService = Depends(get_tree_service),
) -> list[str]:
    return await service.list_sessions()


@router.get("/archive/sessions/{session_id}/events")
async def read_events(
    session_id: str,
    service: TreeService = Depends(get_tree_service),
) -> list[str]:
    try:
        return await service.read_events(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")


@router.get("/archive/snapshots")
async def list_snapshots(
    service: TreeService = Depends(get_tree_service),
) -> list[str]:
    return await service.list_snapshots()


@router.get("/archive/snapshots/{snapshot_id}")
async def read_snapshot(
    snapshot_id: str,
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    try:
        return await service.read_snapshot(snapshot_id)
    except SnapshotNotFoundError:
        raise HTTPException(status_code=404, detail=f"Snapshot not found: {snapshot_id}")
    except SnapshotCorruptError as e:
        raise _storage_failed(e)


# -- Session --


@router.post("/session/save")
async def save_session(
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    try:
        return await service.save_session()
    except PersistenceError as e:
        raise _storage_failed(e)


@router.post("/session/restore")
async def restore_session(
    request: RestoreSessionRequest,
    service: TreeService = Depends(get_tree_service),
) -> TreeState:
    try:
        return await service.restore_session(request.snapshot_id)
    except SnapshotNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Snapshot not found: {request.snapshot_id}"
        )
    except SnapshotCorruptError as e:
        raise _storage_failed(e)
    except PersistenceError as e:
        raise _storage_failed(e)
