"""
Sequential clip playback for one avatar screen.

idle   → the avatar's idle clip (or poster) loops, muted, without controls
active → the message's clips play back to back from index 0
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

WAITING_LABEL = "Waiting for first lipsync video"


@dataclass(frozen=True)
class PlaybackView:
    """What the video pane should render right now."""
    video_url: Optional[str]
    poster_url: Optional[str]
    autoplay: bool
    muted: bool
    loop: bool
    controls: bool
    message_id: Optional[str] = None
    label: str = WAITING_LABEL

    @property
    def is_idle(self) -> bool:
        return self.message_id is None


class PlaybackController:
    def __init__(
        self,
        idle_url: Optional[str] = None,
        poster_url: Optional[str] = None,
        on_change: Optional[Callable[[PlaybackView], None]] = None,
    ):
        self.idle_url = idle_url
        self.poster_url = poster_url
        self.on_change = on_change
        self.active_message_id: Optional[str] = None
        self.ordered_urls: list[str] = []
        self.current_index = 0

    @property
    def is_active(self) -> bool:
        return self.active_message_id is not None

    @property
    def current_url(self) -> Optional[str]:
        if not self.is_active:
            return None
        return self.ordered_urls[self.current_index]

    @property
    def view(self) -> PlaybackView:
        if self.is_active:
            return PlaybackView(
                video_url=self.current_url,
                poster_url=self.poster_url,
                autoplay=True,
                muted=False,
                loop=False,
                controls=True,
                message_id=self.active_message_id,
            )
        return PlaybackView(
            video_url=self.idle_url,
            poster_url=self.poster_url,
            autoplay=True,
            muted=True,
            loop=True,
            controls=False,
        )

    def set_avatar(self, idle_url: Optional[str], poster_url: Optional[str]):
        self.idle_url = idle_url
        self.poster_url = poster_url
        if not self.is_active:
            self._notify()

    def play(self, message_id: str, urls: list[str]) -> bool:
        """
        Start a message's clips from the first one, preempting whatever is playing.
        Returns False (and goes idle) when there is nothing to play.
        """
        urls = [u for u in urls if u]
        if not urls:
            self.stop()
            return False
        self.active_message_id = message_id
        self.ordered_urls = urls
        self.current_index = 0
        logger.debug("Playing %d clip(s) for message %s", len(urls), message_id)
        self._notify()
        return True

    # Replaying history is the same transition as a fresh reply
    replay = play

    def on_clip_ended(self):
        if not self.is_active:
            return
        if self.current_index + 1 < len(self.ordered_urls):
            self.current_index += 1
            self._notify()
        else:
            self.stop()

    def stop(self):
        was_active = self.is_active
        self.active_message_id = None
        self.ordered_urls = []
        self.current_index = 0
        if was_active:
            self._notify()

    def _notify(self):
        if self.on_change is not None:
            self.on_change(self.view)
