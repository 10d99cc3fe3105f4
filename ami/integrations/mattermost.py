"""Mattermost connector: pulls recent channel messages as raw reflection input."""

import logging
import os
from typing import List, Optional

import httpx

from ami.exceptions import AmiError

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_LIMIT = 20
MESSAGE_SEPARATOR = "\n---\n"


class MattermostError(AmiError):
    """Raised when the Mattermost API can't be reached or rejects a request."""


class MattermostClient:
    """Minimal Mattermost REST v4 client.

    Args:
        server_url: Base URL of the Mattermost server
        token: Personal access or bot token
        timeout: Request timeout in seconds
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        server_url: str,
        token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.token = token
        self.client = httpx.Client(
            timeout=timeout,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    @classmethod
    def from_env(cls, server_url: Optional[str] = None) -> "MattermostClient":
        """Build a client from MATTERMOST_URL / MATTERMOST_TOKEN.

        Raises:
            MattermostError: If either value is missing
        """
        token = os.environ.get("MATTERMOST_TOKEN", "")
        url = os.environ.get("MATTERMOST_URL", "") or (server_url or "")
        if not token or not url:
            raise MattermostError("MATTERMOST_TOKEN and MATTERMOST_URL must be set")
        return cls(url, token)

    def get_recent_messages(self, channel_id: str, limit: int = DEFAULT_MESSAGE_LIMIT) -> List[str]:
        """Pull the last ``limit`` user messages from a channel, newest first.

        System posts (joins, header changes, and so on) carry a non-empty
        ``type`` and are skipped.
        """
        try:
            response = self.client.get(
                f"{self.server_url}/api/v4/channels/{channel_id}/posts",
                params={"page": 0, "per_page": limit},
            )
            response.raise_for_status()
            post_list = response.json()
        except httpx.HTTPStatusError as e:
            raise MattermostError(
                f"failed to fetch mattermost posts: HTTP {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise MattermostError(f"failed to fetch mattermost posts: {e}") from e
        except ValueError as e:
            raise MattermostError(f"invalid response from mattermost: {e}") from e

        posts = post_list.get("posts") or {}
        messages = []
        for post_id in post_list.get("order") or []:
            post = posts.get(post_id)
            if not post:
                continue
            if post.get("type"):
                continue
            messages.append(post.get("message", ""))

        logger.debug(f"Fetched {len(messages)} messages from channel {channel_id}")
        return messages

    def close(self) -> None:
        self.client.close()


def join_messages(messages: List[str]) -> str:
    return MESSAGE_SEPARATOR.join(messages)
