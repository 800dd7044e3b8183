"""
YouTube search proxy for eventjam.

Searches videos through the YouTube Data API v3 so the API key never
reaches the browser.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .exceptions import SearchError
from .models import SearchResult

if TYPE_CHECKING:
    from .config_manager import ConfigManager


class YouTubeSearch:
    """Video search backed by the YouTube Data API."""

    def __init__(self, config_manager: "ConfigManager"):
        """
        Initialize YouTubeSearch.

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
                self._youtube = build("youtube", "v3", developerKey=api_key, cache_discovery=False)
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

    def search(self, term: str, max_results: Optional[int] = None) -> List[SearchResult]:
        """
        Search YouTube for videos.

        Args:
            term: Search term
            max_results: Maximum number of results (defaults to youtube_max_results)

        Returns:
            List of SearchResult, possibly empty

        Raises:
            SearchError: empty term, missing API key, or upstream failure.
                The message is meant to be shown to the user unchanged.
        """
        term = (term or "").strip()
        if not term:
            raise SearchError("Search term is required")

        youtube = self._get_youtube_client()
        if not youtube:
            self.logger.warning("YouTube API key not configured, search unavailable")
            raise SearchError("YouTube API key not configured")

        if max_results is None:
            max_results = self.config_manager.get_int("youtube_max_results", 10)

        self.logger.debug("Searching YouTube: %s", term)

        try:
            request = youtube.search().list(
                part="snippet",
                q=term,
                type="video",
                maxResults=max_results,
            )
            response = request.execute()
        except HttpError as e:
            message = getattr(e, "reason", None) or str(e)
            self.logger.error("YouTube API error: %s", message)
            raise SearchError(message) from e
        except Exception as e:
            self.logger.error("Error searching YouTube: %s", e, exc_info=True)
            raise SearchError(str(e)) from e

        results = [self._to_result(item) for item in response.get("items", [])]
        results = [result for result in results if result is not None]
        self.logger.info("Found %s videos for query: %s", len(results), term)
        return results[:max_results]

    def _to_result(self, item: Dict[str, Any]) -> Optional[SearchResult]:
        video_id = item.get("id", {}).get("videoId")
        if not video_id:
            return None
        snippet = item.get("snippet", {})
        return SearchResult(
            external_media_id=video_id,
            title=snippet.get("title", ""),
            thumbnail_url=snippet.get("thumbnails", {}).get("default", {}).get("url") or None,
            channel_label=snippet.get("channelTitle") or None,
        )
