"""
Unit tests for YouTube and media-source helpers.

Uses mocks to avoid actual API calls.
"""

from unittest.mock import MagicMock, Mock, patch

import pytest

from cloudsignage.models import MediaItem, MediaKind, MediaType
from cloudsignage.youtube import (
    YouTubeClient,
    classify_media,
    extract_youtube_id,
    parse_iso8601_duration,
    probe_url,
)


@pytest.fixture
def mock_config_manager():
    """Create a mock ConfigManager for tests."""
    config = Mock()
    config.get.side_effect = lambda key, default=None: {
        "youtube_api_key": "fake_api_key",
    }.get(key, default)
    return config


@pytest.fixture
def youtube_client(mock_config_manager):
    """Create a YouTubeClient instance with mocked API."""
    with patch("cloudsignage.youtube.build") as mock_build:
        mock_youtube = Mock()
        mock_build.return_value = mock_youtube
        client = YouTubeClient(mock_config_manager)
        # Force initialization of the lazy client
        client._youtube = mock_youtube
        client._last_api_key = "fake_api_key"
        yield client


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://youtu.be/dQw4w9WgXcQ",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "https://www.youtube.com/v/dQw4w9WgXcQ",
        "https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
        "https://youtu.be/dQw4w9WgXcQ?t=42",
    ],
)
def test_extract_youtube_id(url):
    assert extract_youtube_id(url) == "dQw4w9WgXcQ"


@pytest.mark.parametrize(
    "url",
    [
        "https://cdn.example.com/videos/promo.mp4",
        "https://www.youtube.com/watch?v=short",
        "",
        None,
    ],
)
def test_extract_youtube_id_rejects(url):
    assert extract_youtube_id(url) is None


def test_classify_media():
    image = MediaItem("i", "Poster", MediaType.IMAGE, "https://cdn.example.com/a.png")
    mp4 = MediaItem("v", "Clip", MediaType.VIDEO, "https://cdn.example.com/a.mp4")
    clip = MediaItem("y", "Clip", MediaType.VIDEO, "https://youtu.be/dQw4w9WgXcQ")

    assert classify_media(image) == MediaKind.IMAGE
    assert classify_media(mp4) == MediaKind.VIDEO_FILE
    assert classify_media(clip) == MediaKind.YOUTUBE


def test_image_with_youtube_url_stays_image():
    media = MediaItem("i", "Odd", MediaType.IMAGE, "https://youtu.be/dQw4w9WgXcQ")
    assert classify_media(media) == MediaKind.IMAGE


def test_parse_duration():
    """Test duration parsing."""
    assert parse_iso8601_duration("PT3M30S") == 210  # 3:30
    assert parse_iso8601_duration("PT1H5M30S") == 3930  # 1:05:30
    assert parse_iso8601_duration("PT45S") == 45
    assert parse_iso8601_duration("PT2H") == 7200
    assert parse_iso8601_duration("") is None
    assert parse_iso8601_duration("invalid") is None
    assert parse_iso8601_duration("PTXS") is None


def test_is_configured(youtube_client):
    assert youtube_client.is_configured() is True


def test_not_configured_without_key():
    config = Mock()
    config.get.return_value = None
    client = YouTubeClient(config)

    assert client.is_configured() is False
    assert client.get_video_info("dQw4w9WgXcQ") is None


def test_get_video_info(youtube_client):
    """Test getting video information."""
    mock_response = {
        "items": [
            {
                "id": "dQw4w9WgXcQ",
                "snippet": {
                    "title": "Store Promo",
                    "thumbnails": {"default": {"url": "http://thumb.jpg"}},
                    "channelTitle": "Marketing",
                },
                "contentDetails": {"duration": "PT3M30S"},
            }
        ]
    }

    mock_videos = Mock()
    mock_videos.list.return_value.execute.return_value = mock_response
    youtube_client._youtube.videos.return_value = mock_videos

    info = youtube_client.get_video_info("dQw4w9WgXcQ")

    assert info is not None
    assert info["id"] == "dQw4w9WgXcQ"
    assert info["title"] == "Store Promo"
    assert info["channel"] == "Marketing"
    assert info["duration_seconds"] == 210


def test_get_video_info_not_found(youtube_client):
    """Test getting info for non-existent video."""
    mock_videos = Mock()
    mock_videos.list.return_value.execute.return_value = {"items": []}
    youtube_client._youtube.videos.return_value = mock_videos

    assert youtube_client.get_video_info("nonexistent") is None


def test_probe_url():
    with patch("cloudsignage.youtube.yt_dlp.YoutubeDL") as mock_ydl_class:
        ydl = MagicMock()
        ydl.extract_info.return_value = {"title": "Clip", "duration": 61.4}
        mock_ydl_class.return_value.__enter__.return_value = ydl

        info = probe_url("https://cdn.example.com/clip.mp4")

    assert info == {"title": "Clip", "duration_seconds": 61}
    ydl.extract_info.assert_called_once_with("https://cdn.example.com/clip.mp4", download=False)


@pytest.mark.network
def test_probe_url_live():
    info = probe_url("https://www.youtube.com/watch?v=dQw4w9WgXcQ")
    assert info["duration_seconds"] > 0
