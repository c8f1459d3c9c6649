"""
Dependency wiring for the FastAPI app, the service layer and the worker.
"""

from __future__ import annotations

from bytebattle.auth import AuthClient
from bytebattle.config import get_settings
from bytebattle.db import DbClient, InMemoryDbClient, SqlDbClient
from bytebattle.executor import PistonClient
from bytebattle.queue import InMemoryJobQueue, JobQueue, RedisJobQueue
from bytebattle.realtime import ChangeFeed, InMemoryChangeFeed, RedisChangeFeed
from bytebattle.storage import InMemoryStorageClient, S3StorageClient, StorageClient

_change_feed: ChangeFeed | None = None
_db_client: DbClient | None = None
_auth_client: AuthClient | None = None
_storage_client: StorageClient | None = None
_queue_client: JobQueue | None = None
_execution_client: PistonClient | None = None


def get_change_feed() -> ChangeFeed:
    global _change_feed
    if _change_feed:
        return _change_feed

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.redis_url:
        _change_feed = InMemoryChangeFeed()
    else:
        _change_feed = RedisChangeFeed(
            url=settings.redis_url,
            channel_prefix=settings.redis_channel_prefix,
        )
    return _change_feed


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    feed = get_change_feed()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient(feed=feed)
    else:
        _db_client = SqlDbClient(settings.database_url, feed=feed)
    return _db_client


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client
    _auth_client = AuthClient(get_db_client())
    return _auth_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_url,
        )
    return _storage_client


def get_queue_client() -> JobQueue:
    """
    Return a singleton queue client for dispatching submissions to judge workers.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _queue_client = RedisJobQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemoryJobQueue()
    return _queue_client


def get_execution_client() -> PistonClient:
    global _execution_client
    if _execution_client:
        return _execution_client

    settings = get_settings()
    _execution_client = PistonClient(
        settings.piston_url,
        compile_timeout_ms=settings.piston_compile_timeout_ms,
        run_timeout_ms=settings.piston_run_timeout_ms,
        request_timeout=settings.piston_request_timeout_seconds,
    )
    return _execution_client
