"""
🔧 Service Manager - Central Service Coordination
===============================================

Composition root: builds the transport, API clients, token manager,
playback engine and services from one JukeboxConfig, and hands out the
shared instances. Nothing in the package reaches for module-level state;
everything is injected from here.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from . import ServiceResult
from .auth_service import AuthService
from .player_service import PlayerService
from ..api.backend import BackendClient
from ..api.http import ResilientTransport
from ..api.spotify import SpotifyClient
from ..config_schema import JukeboxConfig
from ..core.playback import GuidanceNotifier, PlaybackEngine
from ..core.tokens import TokenLifecycleManager
from ..utils.clock import SYSTEM_CLOCK, Clock
from ..utils.logger import log_structured, setup_logger
from ..utils.storage import JsonFileStore, KeyValueStore, MemoryStore


class ServiceManager:
    """Central manager for all Jukebox services."""

    def __init__(
        self,
        config: JukeboxConfig,
        *,
        store: Optional[KeyValueStore] = None,
        clock: Clock = SYSTEM_CLOCK,
        http_client: Optional[httpx.AsyncClient] = None,
        notifier: Optional[GuidanceNotifier] = None,
    ):
        setup_logger("jukebox", config.log_level)
        self.logger = logging.getLogger("jukebox.service_manager")
        self.config = config
        self.logger.info("🚀 Initializing service manager...")

        if store is None:
            store = JsonFileStore(config.storage_path) if config.storage_path else MemoryStore()
        self.store = store

        self.transport = ResilientTransport(
            http_client,
            timeout_seconds=config.http_timeout_seconds,
            max_attempts=config.http_max_attempts,
            backoff_unit_ms=config.http_backoff_unit_ms,
            clock=clock,
        )
        self.backend = BackendClient(
            self.transport,
            config.backend_url,
            anon_key=config.backend_anon_key,
            refresh_path=config.backend_refresh_path,
            sign_out_path=config.backend_sign_out_path,
            clock=clock,
        )
        self.spotify_client = SpotifyClient(
            self.transport,
            api_base=config.spotify_api_base,
            accounts_url=config.spotify_accounts_url,
            client_id=config.client_id,
            client_secret=config.client_secret,
            redirect_uri=config.redirect_uri,
            scopes=config.scopes,
            clock=clock,
        )
        self.tokens = TokenLifecycleManager(
            store,
            self.backend,
            spotify=self.spotify_client,
            clock=clock,
            safety_margin_seconds=config.token_safety_margin_seconds,
        )
        self.engine = PlaybackEngine(
            self.tokens,
            self.spotify_client,
            clock=clock,
            device_settle_ms=config.device_settle_ms,
            settle_poll_enabled=config.settle_poll_enabled,
            settle_poll_interval_ms=config.settle_poll_interval_ms,
            settle_max_wait_ms=config.settle_max_wait_ms,
            previous_restart_threshold_ms=config.previous_restart_threshold_ms,
            strict_ordering=config.strict_ordering,
            language=config.language,
            notifier=notifier,
        )

        self.auth = AuthService(self.tokens)
        self.player = PlayerService(self.engine, language=config.language)

        # Service registry
        self.services = {
            "auth": self.auth,
            "player": self.player,
        }

        log_structured(
            self.logger, logging.INFO, "🎯 Service manager initialization completed",
            services=list(self.services), store=type(store).__name__,
        )

    def get_service(self, name: str) -> Optional[Any]:
        """Get a specific service by name."""
        return self.services.get(name)

    async def health_check_all(self) -> ServiceResult:
        """Perform health check on all services."""
        try:
            results = {}
            overall_healthy = True

            degraded_states = {"degraded", "warning", "error", "failed", "unhealthy"}

            for name, service in self.services.items():
                health = await service.health_check()

                if health.success and isinstance(health.data, dict):
                    status_payload: Dict[str, Any] = health.data
                elif health.success:
                    status_payload = {"status": "healthy", "details": health.data}
                else:
                    status_payload = {"error": health.message}

                status_value = None
                raw_status = status_payload.get("status")
                if isinstance(raw_status, str):
                    status_value = raw_status.lower()

                service_healthy = health.success
                if status_value:
                    service_healthy = service_healthy and status_value not in degraded_states

                results[name] = {
                    "healthy": service_healthy,
                    "status": status_payload
                }
                if not service_healthy:
                    overall_healthy = False

            return ServiceResult(
                success=True,
                data={
                    "overall_healthy": overall_healthy,
                    "services": results,
                    "total_services": len(self.services),
                    "healthy_services": sum(1 for r in results.values() if r["healthy"])
                },
                message="Health check completed for all services"
            )

        except Exception as e:
            self.logger.error(f"Error during health check: {e}")
            return ServiceResult(
                success=False,
                message=f"Health check failed: {str(e)}",
                error_code="HEALTH_CHECK_FAILED"
            )

    async def aclose(self) -> None:
        """Release the shared HTTP client."""
        await self.transport.aclose()
        self.logger.info("🛑 Service manager closed")

    async def __aenter__(self) -> "ServiceManager":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
