# SPDX-License-Identifier: Apache-2.0

"""
Redis service for caching and JWT token management.

This module provides Redis operations using Upstash HTTP client for serverless
compatibility: the JWT token blocklist, the driver stats cache and the unread
notification counter cache. Every cache operation fails soft.
"""

import os
import json
import time
from typing import Optional, List, Dict, Any, Union
from upstash_redis import Redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DRIVER_STATS_TTL = 300
UNREAD_COUNT_TTL = 120


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """
    Redis service with Upstash HTTP client for serverless compatibility.

    Provides JWT token blocklist functionality and short-lived caches for the
    driver dashboard and the notification bell.
    """

    def __init__(self, redis_url: Optional[str] = None, redis_token: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Upstash Redis HTTP URL
            redis_token: Upstash Redis authentication token
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        self.redis_token = redis_token or os.getenv("REDIS_TOKEN")

        if not self.redis_url:
            logger.warning("No REDIS_URL configured, Redis operations will be disabled")
            self.client = None
            return

        try:
            if self.redis_token:
                self.client = Redis(url=self.redis_url, token=self.redis_token)
            else:
                self.client = Redis.from_env()

            self._test_connection()

            logger.info("Redis service initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        """Test Redis connection."""
        if not self.client:
            return

        try:
            result = self.client.ping()
            if result != "PONG":
                raise RedisConnectionError("Redis ping failed")
        except Exception as e:
            logger.error(f"Redis connection test failed: {str(e)}")
            raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def _handle_redis_error(self, operation: str, error: Exception) -> None:
        """Log a failed cache operation without raising."""
        logger.error(f"Redis {operation} failed: {str(error)}")

    def set_with_ttl(self, key: str, value: Union[str, int, Dict, List], ttl_seconds: int) -> bool:
        """
        Set a key-value pair with TTL.

        Args:
            key: Redis key
            value: Value to store (will be JSON serialized if not string)
            ttl_seconds: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.set_with_ttl") as span:
            span.set_attributes({
                "redis.operation": "set_with_ttl",
                "redis.key": key,
                "redis.ttl": ttl_seconds
            })

            try:
                if isinstance(value, (dict, list)):
                    value = json.dumps(value)

                result = self.client.setex(key, ttl_seconds, value)

                span.set_attribute("redis.result", "success")
                logger.debug(f"Redis SET successful: {key} (TTL: {ttl_seconds}s)")

                return result == "OK"

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("SET", e)
                return False

    def get(self, key: str) -> Optional[str]:
        """Get value by key, or None when missing or Redis is down."""
        if not self.is_available():
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attributes({
                "redis.operation": "get",
                "redis.key": key
            })

            try:
                result = self.client.get(key)

                span.set_attribute("redis.result", "hit" if result is not None else "miss")
                logger.debug(f"Redis GET: {key} -> {'hit' if result is not None else 'miss'}")

                return result

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("GET", e)
                return None

    def get_json(self, key: str) -> Optional[Union[Dict, List]]:
        """Get and deserialize a JSON value by key."""
        value = self.get(key)
        if value is None:
            return None

        try:
            return json.loads(value)
        except (TypeError, json.JSONDecodeError) as e:
            logger.error(f"Failed to deserialize JSON from Redis key {key}: {str(e)}")
            return None

    def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if key was deleted, False otherwise
        """
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attributes({
                "redis.operation": "delete",
                "redis.key": key
            })

            try:
                result = self.client.delete(key)

                span.set_attribute("redis.result", "success")
                logger.debug(f"Redis DELETE: {key} -> {result}")

                return result > 0

            except Exception as e:
                span.set_attribute("redis.result", "error")
                self._handle_redis_error("DELETE", e)
                return False

    def exists(self, key: str) -> bool:
        if not self.is_available():
            return False

        try:
            result = self.client.exists(key)
            return result > 0
        except Exception as e:
            self._handle_redis_error("EXISTS", e)
            return False

    # JWT Token Blocklist Methods

    def is_token_blocked(self, token_id: str) -> bool:
        """
        Check if a JWT token is in the blocklist.

        Tokens are allowed when Redis is unavailable; the outage is logged.
        """
        if not self.is_available():
            logger.warning("Redis unavailable for token blocklist check - allowing token")
            return False

        with tracer.start_as_current_span("redis.is_token_blocked") as span:
            span.set_attributes({
                "redis.operation": "is_token_blocked",
                "auth.token_id": token_id
            })

            key = f"jwt:blocked:{token_id}"
            result = self.exists(key)

            span.set_attribute("auth.token_blocked", result)
            logger.debug(f"Token blocklist check: {token_id} -> {'blocked' if result else 'allowed'}")

            return result

    def block_token(self, token_id: str, ttl_seconds: int) -> bool:
        """
        Add a JWT token to the blocklist.

        Args:
            token_id: Unique token identifier
            ttl_seconds: Time to live (should match token expiration)
        """
        if not self.is_available():
            logger.error("Redis unavailable - cannot block token")
            return False

        with tracer.start_as_current_span("redis.block_token") as span:
            span.set_attributes({
                "redis.operation": "block_token",
                "auth.token_id": token_id,
                "redis.ttl": ttl_seconds
            })

            key = f"jwt:blocked:{token_id}"
            result = self.set_with_ttl(key, "1", ttl_seconds)

            span.set_attribute("auth.token_block_result", "success" if result else "failed")

            if result:
                logger.info(f"Token blocked successfully: {token_id} (TTL: {ttl_seconds}s)")
            else:
                logger.error(f"Failed to block token: {token_id}")

            return result

    # Driver stats cache

    def cache_driver_stats(self, driver_id: str, stats: Dict[str, Any], ttl_seconds: int = DRIVER_STATS_TTL) -> bool:
        """Cache the computed dashboard payload of a driver."""
        if not self.is_available():
            return False

        with tracer.start_as_current_span("redis.cache_driver_stats") as span:
            span.set_attributes({
                "redis.operation": "cache_driver_stats",
                "driver.id": driver_id,
                "redis.ttl": ttl_seconds
            })
            return self.set_with_ttl(f"driver:stats:{driver_id}", stats, ttl_seconds)

    def get_cached_driver_stats(self, driver_id: str) -> Optional[Dict[str, Any]]:
        if not self.is_available():
            return None
        return self.get_json(f"driver:stats:{driver_id}")

    def invalidate_driver_stats(self, driver_id: str) -> bool:
        if not self.is_available():
            return False
        result = self.delete(f"driver:stats:{driver_id}")
        logger.debug(f"Driver stats cache invalidated: {driver_id}")
        return result

    # Unread notification counter cache

    def cache_unread_count(self, user_id: str, count: int, ttl_seconds: int = UNREAD_COUNT_TTL) -> bool:
        if not self.is_available():
            return False
        return self.set_with_ttl(f"user:notifications:unread:{user_id}", str(count), ttl_seconds)

    def get_cached_unread_count(self, user_id: str) -> Optional[int]:
        """Cached unread count, or None on a miss or an unparsable value."""
        value = self.get(f"user:notifications:unread:{user_id}")
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Discarding invalid unread count cache for user {user_id}: {value!r}")
            return None

    def invalidate_unread_count(self, user_id: str) -> bool:
        if not self.is_available():
            return False
        return self.delete(f"user:notifications:unread:{user_id}")

    # Health Check Methods

    def ping(self) -> bool:
        if not self.is_available():
            return False

        try:
            result = self.client.ping()
            return result == "PONG"
        except Exception as e:
            logger.error(f"Redis ping failed: {str(e)}")
            return False

    def health_check(self) -> Dict[str, Any]:
        """
        Perform Redis health check with a set/get/delete round trip.

        Returns:
            Health check results
        """
        if not self.is_available():
            return {
                "status": "unavailable",
                "message": "Redis client not initialized",
                "timestamp": time.time()
            }

        try:
            start_time = time.time()

            test_key = f"health:check:{int(start_time)}"
            self.set_with_ttl(test_key, "test", 10)
            value = self.get(test_key)
            self.delete(test_key)

            response_time = (time.time() - start_time) * 1000

            if value == "test":
                return {
                    "status": "healthy",
                    "response_time_ms": round(response_time, 2),
                    "timestamp": time.time()
                }
            return {
                "status": "degraded",
                "message": "Redis operations not working correctly",
                "response_time_ms": round(response_time, 2),
                "timestamp": time.time()
            }

        except Exception as e:
            return {
                "status": "unhealthy",
                "message": str(e),
                "timestamp": time.time()
            }
