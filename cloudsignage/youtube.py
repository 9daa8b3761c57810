"""
YouTube and media-source helpers for cloudsignage.

Recognises YouTube links, looks up clip metadata via the YouTube Data API v3,
and probes playable URLs with yt-dlp.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Optional

import yt_dlp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .models import MediaItem, MediaKind, MediaType

if TYPE_CHECKING:
    from .config_manager import ConfigManager

logger = logging.getLogger(__name__)

# youtu.be/ID, /v/ID, /u/x/ID, /embed/ID, watch?v=ID, &v=ID
YOUTUBE_ID_PATTERN = re.compile(r"^.*(youtu\.be/|v/|u/\w/|embed/|watch\?v=|&v=)([^#&?]*).*")
YOUTUBE_ID_LENGTH = 11


def extract_youtube_id(url: Optional[str]) -> Optional[str]:
    """
    Extract the 11-character video id from a YouTube URL.

    Args:
        url: Any URL (or None)

    Returns:
        The video id, or None if the URL is not a recognisable YouTube link
    """
    if not url or not isinstance(url, str):
        return None
    match = YOUTUBE_ID_PATTERN.match(url)
    if match and len(match.group(2)) == YOUTUBE_ID_LENGTH:
        return match.group(2)
    return None


def classify_media(media: MediaItem) -> MediaKind:
    """Resolve a stored media type to the kind that drives playback."""
    if media.type == MediaType.IMAGE:
        return MediaKind.IMAGE
    if extract_youtube_id(media.url):
        return MediaKind.YOUTUBE
    return MediaKind.VIDEO_FILE


def parse_iso8601_duration(duration_str: str) -> Optional[int]:
    """
    Parse ISO 8601 duration string to seconds.

    Args:
        duration_str: ISO 8601 duration (e.g., "PT4M13S")

    Returns:
        Duration in seconds, or None if parsing fails
    """
    if not duration_str or not duration_str.startswith("PT"):
        return None

    remaining = duration_str[2:]
    if not remaining:
        return None

    total = 0
    try:
        for unit, factor in (("H", 3600), ("M", 60), ("S", 1)):
            if unit in remaining:
                value, remaining = remaining.split(unit, 1)
                if value:
                    total += int(value) * factor
    except ValueError as e:
        logger.warning("Failed to parse duration %s: %s", duration_str, e)
        return None

    # Anything left over was not a recognised component
    if remaining.strip():
        return None
    return total


class YouTubeClient:
    """Looks up YouTube clip metadata so operators can match item durations."""

    def __init__(self, config_manager: "ConfigManager"):
        """
        Initialize YouTubeClient.

        Args:
            config_manager: ConfigManager for runtime config access
        """
        self.logger = logging.getLogger(__name__)
        self.config_manager = config_manager

        # Lazy-initialized YouTube API client
        self._youtube = None
        self._last_api_key: Optional[str] = None

    def _get_youtube_client(self):
        """
        Get or create YouTube API client.

        Returns None if API key is not configured.
        Reinitializes client if API key has changed (allowing runtime updates).
        """
        api_key = self.config_manager.get("youtube_api_key")

        if not api_key:
            self._youtube = None
            self._last_api_key = None
            return None

        if api_key != self._last_api_key:
            try:
                self._youtube = build("youtube", "v3", developerKey=api_key)
                self._last_api_key = api_key
                self.logger.info("YouTube API client initialized")
            except Exception as e:
                self.logger.error("Failed to initialize YouTube API client: %s", e)
                self._youtube = None
                self._last_api_key = None

        return self._youtube

    def is_configured(self) -> bool:
        """Check if YouTube API key is configured and valid."""
        return self._get_youtube_client() is not None

    def get_video_info(self, video_id: str) -> Optional[Dict[str, Any]]:
        """
        Get title, channel and duration of a YouTube video.

        Args:
            video_id: YouTube video ID

        Returns:
            Video dictionary, or None if not found/API not configured
        """
        youtube = self._get_youtube_client()
        if not youtube:
            self.logger.warning("YouTube API key not configured, video info unavailable")
            return None

        try:
            response = youtube.videos().list(part="contentDetails,snippet", id=video_id).execute()

            if not response.get("items"):
                self.logger.warning("Video not found: %s", video_id)
                return None

            item = response["items"][0]
            snippet = item["snippet"]
            content_details = item.get("contentDetails", {})

            return {
                "id": video_id,
                "title": snippet.get("title", ""),
                "thumbnail": snippet.get("thumbnails", {}).get("default", {}).get("url", ""),
                "channel": snippet.get("channelTitle", ""),
                "duration_seconds": parse_iso8601_duration(content_details.get("duration", "")),
            }
        except HttpError as e:
            self.logger.error("YouTube API error getting video info: %s", e)
            return None
        except Exception as e:
            self.logger.error("Error getting video info: %s", e, exc_info=True)
            return None


def probe_url(url: str) -> Dict[str, Any]:
    """
    Check that a video URL resolves to playable media, without downloading it.

    Args:
        url: Direct file URL or YouTube link

    Returns:
        Dictionary with 'title' and 'duration_seconds' (None when unknown)

    Raises:
        yt_dlp.utils.DownloadError: if the URL cannot be resolved
    """
    ydl_opts = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "retries": 1,
    }
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(url, download=False)

    duration = info.get("duration") if info else None
    return {
        "title": (info or {}).get("title", ""),
        "duration_seconds": int(duration) if duration else None,
    }
