"""FastAPI routes for scans, realtime protection, quarantine and detections."""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from .errors import (
    InvalidQuarantineNameError,
    QuarantineError,
    SignatureCacheError,
    ThreatIntelError,
)
from .models import RestoreItem

if TYPE_CHECKING:
    from ..agent import StellarAgent

logger = logging.getLogger(__name__)


class QuickScanRequest(BaseModel):
    max_bytes: Optional[int] = Field(None, ge=1)


class RealtimeToggle(BaseModel):
    enabled: bool


class PathsRequest(BaseModel):
    paths: List[str]


class NamesRequest(BaseModel):
    names: List[str]


class RestoreRequest(BaseModel):
    items: List[RestoreItem]


class ThreatDbRequest(BaseModel):
    threats_json: str


def _quarantine_failure(e: QuarantineError) -> HTTPException:
    if isinstance(e, InvalidQuarantineNameError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def create_control_router(agent: "StellarAgent") -> APIRouter:
    """Create FastAPI router exposing the agent's inbound commands."""

    router = APIRouter(tags=["control"])

    @router.get("/status")
    def get_status() -> Dict[str, Any]:
        """Protection state and the most recent scan results."""
        scans = agent.get_recent_scans(5)
        return {
            "realtime_enabled": agent.get_realtime_enabled(),
            "realtime_running": agent.realtime_monitor.is_running,
            "verdict_source": agent.verdict_source.source_name,
            "signatures": agent.signature_cache.count_signatures(),
            "quarantined": len(agent.list_quarantine()),
            "scans": [
                {
                    "profile": r.profile,
                    "status": r.status.value,
                    "threats": r.threat_count,
                    "files_collected": r.files_collected,
                    "duration_seconds": r.duration_seconds,
                    "error_message": r.error_message,
                }
                for r in scans
            ],
        }

    async def _scan(coro) -> Dict[str, Any]:
        try:
            report = await coro
        except ThreatIntelError as e:
            logger.warning(f"Scan request failed: {e}")
            raise HTTPException(
                status_code=502, detail=f"Scan could not verify results: {e}"
            )
        return report.model_dump(mode="json")

    @router.post("/scan/quick")
    async def quick_scan(request: Optional[QuickScanRequest] = None) -> Dict[str, Any]:
        max_bytes = request.max_bytes if request else None
        return await _scan(agent.start_quick_scan(max_bytes))

    @router.post("/scan/full")
    async def full_scan() -> Dict[str, Any]:
        return await _scan(agent.start_full_scan())

    @router.get("/realtime")
    async def get_realtime() -> Dict[str, bool]:
        return {"enabled": agent.get_realtime_enabled()}

    @router.put("/realtime")
    def set_realtime(toggle: RealtimeToggle) -> Dict[str, bool]:
        agent.set_realtime_enabled(toggle.enabled)
        return {"enabled": agent.get_realtime_enabled()}

    @router.get("/quarantine")
    def list_quarantine() -> List[Dict[str, Any]]:
        return [item.model_dump(mode="json") for item in agent.list_quarantine()]

    @router.post("/quarantine")
    def quarantine_files(request: PathsRequest) -> List[Dict[str, Any]]:
        try:
            moved = agent.quarantine(request.paths)
        except QuarantineError as e:
            raise _quarantine_failure(e)
        return [item.model_dump(mode="json") for item in moved]

    @router.post("/quarantine/restore")
    def restore_files(request: RestoreRequest) -> Dict[str, Any]:
        try:
            restored = agent.restore(request.items)
        except QuarantineError as e:
            raise _quarantine_failure(e)
        return {"restored": restored}

    @router.post("/quarantine/delete")
    def delete_files(request: NamesRequest) -> Dict[str, int]:
        try:
            removed = agent.delete_quarantined(request.names)
        except QuarantineError as e:
            raise _quarantine_failure(e)
        return {"deleted": removed}

    @router.post("/quarantine/delete-by-path")
    def delete_by_path(request: PathsRequest) -> Dict[str, int]:
        try:
            removed = agent.delete_by_original_path(request.paths)
        except QuarantineError as e:
            raise _quarantine_failure(e)
        return {"deleted": removed}

    @router.post("/threat-db")
    def update_threat_db(request: ThreatDbRequest) -> Dict[str, int]:
        try:
            count = agent.update_threat_db(request.threats_json)
        except SignatureCacheError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"signatures": count}

    @router.get("/detections")
    def get_detections(limit: int = Query(50, ge=1, le=500)) -> Dict[str, Any]:
        detections = agent.get_detections(limit)
        return {
            "detections": [d.model_dump(mode="json") for d in detections],
            "count": len(detections),
        }

    return router
