"""
FastAPI web server for cloudsignage.

Provides the REST API used by the administrative surface: media and playlist
management, forced device assignment, device presence and configuration.
"""

import logging
import uuid
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from starlette.middleware.sessions import SessionMiddleware

from ..config_manager import ConfigManager
from ..datastore import (
    DEVICES,
    MEDIA,
    PLAYLISTS,
    Datastore,
    DocumentNotFoundError,
    PayloadTooLargeError,
)
from ..models import TIME_PATTERN, MediaType, Playlist, ScreenDevice
from ..presence import is_device_online
from ..scheduler import resolve_active_playlist
from ..timers import TimerService
from ..youtube import YouTubeClient, extract_youtube_id

logger = logging.getLogger(__name__)

# Durations the admin UI pre-fills for new media
DEFAULT_DURATIONS = {MediaType.IMAGE.value: 10, MediaType.VIDEO.value: 30}


# Request models
class MediaRequest(BaseModel):
    name: str
    type: Literal["image", "video"]
    url: str
    duration: Optional[int] = Field(default=None, gt=0)
    orientation: Literal["landscape", "portrait"] = "landscape"


class MediaUpdateRequest(BaseModel):
    """Request model for updating media properties."""

    name: Optional[str] = None
    url: Optional[str] = None
    duration: Optional[int] = Field(default=None, gt=0)
    orientation: Optional[Literal["landscape", "portrait"]] = None


class ScheduleModel(BaseModel):
    days: List[int] = [0, 1, 2, 3, 4, 5, 6]  # 0 = Sunday
    startTime: str = Field(default="06:00", pattern=TIME_PATTERN)
    endTime: str = Field(default="22:00", pattern=TIME_PATTERN)
    active: bool = True

    @field_validator("days")
    @classmethod
    def check_days(cls, days: List[int]) -> List[int]:
        if any(day < 0 or day > 6 for day in days):
            raise ValueError("days must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(days))


class PlaylistItemModel(BaseModel):
    mediaId: str
    duration: Optional[int] = Field(default=None, gt=0)


class PlaylistRequest(BaseModel):
    name: str
    orientation: Literal["landscape", "portrait"] = "landscape"
    priority: int = 0
    schedule: ScheduleModel = ScheduleModel()
    items: List[PlaylistItemModel] = []


class AssignmentRequest(BaseModel):
    playlist_id: Optional[str] = None  # None = follow the schedule


class OperatorAuthRequest(BaseModel):
    pin: str


class ConfigUpdateRequest(BaseModel):
    key: str
    value: str


# Dependency to get components
def get_datastore(request: Request) -> Datastore:
    """Get Datastore from app state."""
    return request.app.state.datastore


def get_config_manager(request: Request) -> ConfigManager:
    """Get ConfigManager from app state."""
    return request.app.state.config_manager


def get_youtube_client(request: Request) -> YouTubeClient:
    """Get YouTubeClient from app state."""
    return request.app.state.youtube_client


def get_timers(request: Request) -> TimerService:
    """Get the clock from app state."""
    return request.app.state.timers


def check_operator(request: Request) -> bool:
    """
    Check if user is authenticated as operator.
    """
    return request.session.get("operator", False)


def create_app(
    datastore: Datastore,
    config_manager: ConfigManager,
    youtube_client: YouTubeClient,
    timers: Optional[TimerService] = None,
    secret_key: str = "cloudsignage-secret-key-change-in-production",
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        datastore: Datastore instance
        config_manager: ConfigManager instance
        youtube_client: YouTubeClient instance
        timers: Clock used for presence and schedule previews
        secret_key: Session cookie signing key

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="cloudsignage", version="1.0.0")

    # Add session middleware for operator authentication
    app.add_middleware(SessionMiddleware, secret_key=secret_key)

    # Store components in app state
    app.state.datastore = datastore
    app.state.config_manager = config_manager
    app.state.youtube_client = youtube_client
    app.state.timers = timers or TimerService()

    @app.exception_handler(PayloadTooLargeError)
    async def payload_too_large(request: Request, exc: PayloadTooLargeError):
        logger.warning("Rejected oversized document: %s", exc)
        return JSONResponse(
            status_code=413,
            content={
                "detail": (
                    f"Document is {exc.size} bytes, the limit is {exc.limit} bytes. "
                    "Please compress the image or use a URL instead."
                )
            },
        )

    @app.exception_handler(DocumentNotFoundError)
    async def document_not_found(request: Request, exc: DocumentNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    def require_operator(is_operator: bool):
        if not is_operator:
            raise HTTPException(status_code=403, detail="Operator authentication required")

    # Media endpoints
    @app.get("/api/media")
    async def list_media(store: Datastore = Depends(get_datastore)):
        """Get all media items in catalog order."""
        return {"media": store.list(MEDIA)}

    @app.post("/api/media")
    async def create_media(
        request_data: MediaRequest,
        store: Datastore = Depends(get_datastore),
        is_operator: bool = Depends(check_operator),
    ):
        """Add a media item (operator only)."""
        require_operator(is_operator)
        media_id = uuid.uuid4().hex
        document = {
            "id": media_id,
            "name": request_data.name,
            "type": request_data.type,
            "url": request_data.url,
            "duration": request_data.duration or DEFAULT_DURATIONS[request_data.type],
            "orientation": request_data.orientation,
        }
        store.set(MEDIA, media_id, document)
        logger.info("Added %s media '%s' (%s)", request_data.type, request_data.name, media_id)
        return document

    @app.put("/api/media/{media_id}")
    async def update_media(
        media_id: str,
        request_data: MediaUpdateRequest,
        store: Datastore = Depends(get_datastore),
        is_operator: bool = Depends(check_operator),
    ):
        """Update media properties (operator only)."""
        require_operator(is_operator)
        fields = request_data.model_dump(exclude_none=True)
        if not fields:
            raise HTTPException(status_code=400, detail="Nothing to update")
        store.patch(MEDIA, media_id, fields)
        return store.get(MEDIA, media_id)

    @app.delete("/api/media/{media_id}")
    async def delete_media(
        media_id: str,
        store: Datastore = Depends(get_datastore),
        is_operator: bool = Depends(check_operator),
    ):
        """Delete media (operator only). Playlists referencing it skip the item."""
        require_operator(is_operator)
        store.delete(MEDIA, media_id)
        return {"status": "deleted", "id": media_id}

    @app.get("/api/media/{media_id}/youtube")
    async def get_media_youtube_info(
        media_id: str,
        store: Datastore = Depends(get_datastore),
        youtube: YouTubeClient = Depends(get_youtube_client),
    ):
        """Look up the YouTube clip behind a video media item."""
        media = store.get(MEDIA, media_id)
        if media is None:
            raise HTTPException(status_code=404, detail="Media not found")
        video_id = extract_youtube_id(media.get("url"))
        if not video_id:
            raise HTTPException(status_code=400, detail="Media is not a YouTube link")
        if not youtube.is_configured():
            raise HTTPException(status_code=503, detail="YouTube API key not configured")
        info = youtube.get_video_info(video_id)
        if not info:
            raise HTTPException(status_code=404, detail="Video not found")
        return info

    # Playlist endpoints
    @app.get("/api/playlists")
    async def list_playlists(store: Datastore = Depends(get_datastore)):
        """Get all playlists in collection order."""
        return {"playlists": store.list(PLAYLISTS)}

    @app.post("/api/playlists")
    async def create_playlist(
        request_data: PlaylistRequest,
        store: Datastore = Depends(get_datastore),
        is_operator: bool = Depends(check_operator),
    ):
        """Create a playlist (operator only)."""
        require_operator(is_operator)
        playlist_id = uuid.uuid4().hex
        document = {"id": playlist_id, **request_data.model_dump()}
        store.set(PLAYLISTS, playlist_id, document)
        logger.info("Created playlist '%s' (%s)", request_data.name, playlist_id)
        return document

    @app.put("/api/playlists/{playlist_id}")
    async def replace_playlist(
        playlist_id: str,
        request_data: PlaylistRequest,
        store: Datastore = Depends(get_datastore),
        is_operator: bool = Depends(check_operator),
    ):
        """Replace a playlist's items, schedule and settings (operator only)."""
        require_operator(is_operator)
        if store.get(PLAYLISTS, playlist_id) is None:
            raise HTTPException(status_code=404, detail="Playlist not found")
        document = {"id": playlist_id, **request_data.model_dump()}
        store.set(PLAYLISTS, playlist_id, document)
        return document

    @app.delete("/api/playlists/{playlist_id}")
    async def delete_playlist(
        playlist_id: str,
        store: Datastore = Depends(get_datastore),
        is_operator: bool = Depends(check_operator),
    ):
        """Delete a playlist (operator only). Devices pinned to it show nothing."""
        require_operator(is_operator)
        store.delete(PLAYLISTS, playlist_id)
        return {"status": "deleted", "id": playlist_id}

    # Device endpoints
    @app.get("/api/devices")
    async def list_devices(
        store: Datastore = Depends(get_datastore),
        config: ConfigManager = Depends(get_config_manager),
        clock: TimerService = Depends(get_timers),
    ):
        """Get all devices with liveness derived from lastPing."""
        now_ms = clock.epoch_ms()
        offline_after = config.get_int("offline_after_seconds", 60)
        devices = []
        for document in store.list(DEVICES):
            device = ScreenDevice.from_dict(document)
            devices.append({**document, "online": is_device_online(device, now_ms, offline_after)})
        return {"devices": devices}

    @app.put("/api/devices/{device_id}/assignment")
    async def assign_playlist(
        device_id: str,
        request_data: AssignmentRequest,
        store: Datastore = Depends(get_datastore),
        is_operator: bool = Depends(check_operator),
    ):
        """Pin a device to a playlist, or clear the pin (operator only)."""
        require_operator(is_operator)
        playlist_id = request_data.playlist_id or None
        if playlist_id and store.get(PLAYLISTS, playlist_id) is None:
            raise HTTPException(status_code=404, detail="Playlist not found")
        store.patch(DEVICES, device_id, {"assignedPlaylistId": playlist_id})
        logger.info("Device %s assignment set to %s", device_id, playlist_id or "schedule")
        return {"status": "updated", "id": device_id, "assignedPlaylistId": playlist_id}

    @app.get("/api/devices/{device_id}/active-playlist")
    async def preview_active_playlist(
        device_id: str,
        store: Datastore = Depends(get_datastore),
        config: ConfigManager = Depends(get_config_manager),
        clock: TimerService = Depends(get_timers),
    ):
        """Show which playlist the device should be playing right now."""
        document = store.get(DEVICES, device_id)
        if document is None:
            raise HTTPException(status_code=404, detail="Device not found")
        playlist = resolve_active_playlist(
            ScreenDevice.from_dict(document),
            [Playlist.from_dict(p) for p in store.list(PLAYLISTS)],
            clock.now(),
            allow_overnight=config.get_bool("schedule_overnight_windows", False),
        )
        return {"device_id": device_id, "playlist": playlist.to_dict() if playlist else None}

    @app.get("/api/overview")
    async def get_overview(
        store: Datastore = Depends(get_datastore),
        config: ConfigManager = Depends(get_config_manager),
        clock: TimerService = Depends(get_timers),
    ):
        """Dashboard counters."""
        now_ms = clock.epoch_ms()
        offline_after = config.get_int("offline_after_seconds", 60)
        devices = [ScreenDevice.from_dict(d) for d in store.list(DEVICES)]
        return {
            "media": len(store.list(MEDIA)),
            "playlists": len(store.list(PLAYLISTS)),
            "devices": len(devices),
            "online": sum(1 for d in devices if is_device_online(d, now_ms, offline_after)),
        }

    # Authentication endpoints
    @app.get("/api/auth/operator")
    async def check_operator_status(request: Request):
        """Check if user is currently authenticated as operator."""
        is_operator = check_operator(request)
        return {"operator": is_operator}

    @app.post("/api/auth/operator")
    async def authenticate_operator(
        request: Request,
        auth_data: OperatorAuthRequest,
        config: ConfigManager = Depends(get_config_manager),
    ):
        """Authenticate as operator with PIN."""
        correct_pin = config.get("operator_pin", "1234")
        if auth_data.pin == correct_pin:
            request.session["operator"] = True
            return {"status": "authenticated", "operator": True}
        else:
            raise HTTPException(status_code=401, detail="Invalid PIN")

    @app.post("/api/auth/logout")
    async def logout_operator(request: Request):
        """Exit operator mode."""
        request.session["operator"] = False
        return {"status": "logged_out", "operator": False}

    # Configuration endpoints
    @app.get("/api/config")
    async def get_config(config: ConfigManager = Depends(get_config_manager)):
        """
        Get all configuration with schema metadata.

        Returns:
            - values: Current configuration values
            - schema: Metadata for each editable key (control type, description)
            - groups: Group definitions for organizing the config UI
        """
        return config.get_full_config()

    @app.patch("/api/config")
    async def update_config(
        request_data: ConfigUpdateRequest,
        config: ConfigManager = Depends(get_config_manager),
        is_operator: bool = Depends(check_operator),
    ):
        """Update configuration (operator only)."""
        require_operator(is_operator)
        config.set(request_data.key, request_data.value)
        return {
            "status": "updated",
            "key": request_data.key,
            "value": request_data.value,
        }

    return app
