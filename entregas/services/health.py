"""
Health Check Service

Provides health monitoring for MongoDB, Redis and the AMQP broker plus basic
system metrics.
"""

import os
import time
import psutil
from datetime import datetime
from typing import Dict, Any, List
from opentelemetry import trace

from .. import __version__
from .mongodb import MongoDBService
from .redis import RedisService
from .amqp import AMQPService

tracer = trace.get_tracer(__name__)


def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


class HealthCheckService:
    """Service for system health monitoring."""

    def __init__(self, mongodb_service: MongoDBService, redis_service: RedisService, amqp_service: AMQPService):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.amqp_service = amqp_service
        self.service_version = __version__

    def get_comprehensive_health(self) -> Dict[str, Any]:
        """Get health status including all dependencies and metrics."""
        with tracer.start_as_current_span("health.comprehensive_check") as span:
            start_time = time.time()

            mongodb_health = self._check_mongodb_health()
            redis_health = self._check_redis_health()
            amqp_health = self._check_amqp_health()

            overall_status = self._determine_overall_status([
                mongodb_health["status"],
                redis_health["status"],
                amqp_health["status"]
            ])

            response_time_ms = round((time.time() - start_time) * 1000, 2)

            health_data = {
                "status": overall_status,
                "service": "entregas-api",
                "version": self.service_version,
                "environment": os.getenv('ENVIRONMENT', 'development'),
                "timestamp": _now(),
                "response_time_ms": response_time_ms,
                "dependencies": {
                    "mongodb": mongodb_health,
                    "redis": redis_health,
                    "amqp": amqp_health
                },
                "system_metrics": self._get_system_metrics(),
                "feature_flags": self._get_feature_flags(),
                "configuration": self._get_configuration_status()
            }

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                "health.mongodb_status": mongodb_health["status"],
                "health.redis_status": redis_health["status"],
                "health.amqp_status": amqp_health["status"]
            })

            return health_data

    def _check_mongodb_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.mongodb_check") as span:
            start_time = time.time()
            result = self.mongodb_service.health_check()
            response_time = round((time.time() - start_time) * 1000, 2)

            span.set_attributes({
                "mongodb.status": result.get("status", "unhealthy"),
                "mongodb.response_time_ms": response_time
            })

            health_info = {
                "status": result.get("status", "unhealthy"),
                "response_time_ms": response_time,
                "last_check": _now()
            }
            if "version" in result:
                health_info["version"] = result["version"]
            if "error" in result:
                health_info["error"] = result["error"]
            return health_info

    def _check_redis_health(self) -> Dict[str, Any]:
        """Redis is optional; an unconfigured client reports ``unavailable``."""
        with tracer.start_as_current_span("health.redis_check") as span:
            result = self.redis_service.health_check()
            status = result.get("status", "unhealthy")
            span.set_attribute("redis.status", status)

            health_info = {"status": status, "last_check": _now()}
            if "response_time_ms" in result:
                health_info["response_time_ms"] = result["response_time_ms"]
            if "message" in result:
                health_info["message"] = result["message"]
            return health_info

    def _check_amqp_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.amqp_check") as span:
            start_time = time.time()
            is_healthy = self.amqp_service.health_check()
            response_time = round((time.time() - start_time) * 1000, 2)
            status = "healthy" if is_healthy else "unhealthy"

            span.set_attributes({
                "amqp.status": status,
                "amqp.response_time_ms": response_time
            })

            return {
                "status": status,
                "response_time_ms": response_time,
                "last_check": _now()
            }

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get basic system performance metrics."""
        try:
            cpu_percent = psutil.cpu_percent(interval=0.1)
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')

            return {
                "cpu_percent": cpu_percent,
                "memory": {
                    "used_mb": round(memory.used / 1024 / 1024, 2),
                    "total_mb": round(memory.total / 1024 / 1024, 2),
                    "percent": memory.percent
                },
                "disk": {
                    "used_gb": round(disk.used / 1024 / 1024 / 1024, 2),
                    "total_gb": round(disk.total / 1024 / 1024 / 1024, 2),
                    "percent": round((disk.used / disk.total) * 100, 2)
                },
                "load_average": list(os.getloadavg()) if hasattr(os, 'getloadavg') else None
            }
        except (OSError, psutil.Error) as e:
            return {
                "error": f"Failed to collect system metrics: {str(e)}"
            }

    def _get_feature_flags(self) -> Dict[str, bool]:
        return {
            "docs_enabled": os.getenv('DOCS_ENABLED', 'true').lower() == 'true',
            "otel_enabled": os.getenv('OTEL_ENABLED', 'true').lower() == 'true'
        }

    def _get_configuration_status(self) -> Dict[str, Any]:
        config_status = {
            "mongodb_uri_configured": bool(os.getenv('MONGODB_URI')),
            "redis_configured": bool(os.getenv('REDIS_URL')),
            "amqp_configured": bool(os.getenv('AMQP_URL')),
            "jwt_keys_configured": bool(os.getenv('JWT_PRIVATE_KEY') and os.getenv('JWT_PUBLIC_KEY')),
            "environment": os.getenv('ENVIRONMENT', 'development')
        }

        critical_configs = ['mongodb_uri_configured', 'amqp_configured', 'jwt_keys_configured']
        config_status["all_critical_configured"] = all(
            config_status[config] for config in critical_configs
        )

        return config_status

    def _determine_overall_status(self, dependency_statuses: List[str]) -> str:
        """Healthy when all are, unhealthy when none are, degraded otherwise."""
        if all(status == "healthy" for status in dependency_statuses):
            return "healthy"
        if any(status == "healthy" for status in dependency_statuses):
            return "degraded"
        return "unhealthy"
