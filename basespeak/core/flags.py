"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local/mock fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Identity ─────────────────────────────────────────────────────
    use_auth: bool = Field(default=True, alias="FF_USE_AUTH")
    # ON  → every /v1 call must carry an x-user-id header, else 401.
    # OFF → Dev user injected (user_id="dev-user"). No header needed.

    # ── Storage ──────────────────────────────────────────────────────
    use_s3: bool = Field(default=False, alias="FF_USE_S3")
    # ON  → Assets go to AWS S3 buckets. Needs AWS creds.
    # OFF → Assets saved under LOCAL_STORAGE_PATH, served by /v1/files.

    # ── Realtime ─────────────────────────────────────────────────────
    use_redis: bool = Field(default=False, alias="FF_USE_REDIS")
    # ON  → Redis pub/sub for message events. Needs REDIS_URL.
    # OFF → Notifications silently skipped. Nothing breaks.

    # ── Lipsync ──────────────────────────────────────────────────────
    use_lipsync: bool = Field(default=True, alias="FF_USE_LIPSYNC")
    # OFF → Every reply is audio-only (status audio_ready).

    lipsync_vendor: str = Field(default="gooey", alias="FF_LIPSYNC_VENDOR")
    # "gooey"       → POST /lipsync, body carries job_id or mp4_url.
    # "gooey_async" → POST /v3/Lipsync/async, Location header to poll.

    reply_mode: str = Field(default="segmented", alias="FF_REPLY_MODE")
    # "segmented"  → Per-segment clips, reply waits for all of them.
    # "single_job" → One render for the whole reply, client polls /v1/job.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
