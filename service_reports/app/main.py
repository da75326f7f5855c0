"""
Reports service for the Reports Cache Layer.
"""

from typing import Callable, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from shared.base_service import BaseService, cors_headers, error_response
from shared.config import ReportsConfig
from shared.errors import ServiceException

from .cache.snapshot_store import SnapshotStore, create_snapshot_store
from .models import ReportsMeta, ReportsResponse, WEBHOOK_NONE, WEBHOOK_VERIFIED, format_cached_at
from .projection.query import parse_query_parameters, project
from .refresh.decision import SnapshotRefresher, now_ms
from .upstream.collection_fetcher import CollectionFetcher
from .webhook.signature import (
    SIGNATURE_HEADER,
    decode_transport_body,
    parse_webhook_secrets,
    verify_signature,
)


class ReportsService(BaseService):
    """Reports service implementation."""

    def __init__(
        self,
        config: Optional[ReportsConfig] = None,
        store: Optional[SnapshotStore] = None,
        fetcher: Optional[CollectionFetcher] = None,
        clock: Callable[[], int] = now_ms
    ):
        super().__init__("reports", config)

        self.webhook_secrets = parse_webhook_secrets(self.config.webhook_secrets)
        if not self.webhook_secrets:
            self.logger.warning("No webhook secrets configured; webhook-triggered refresh is disabled")

        # Components
        self.store = store or create_snapshot_store(self.config)
        self.fetcher = fetcher or CollectionFetcher(
            api_base_url=self.config.upstream_api_base_url,
            collection_id=self.config.upstream_collection_id,
            api_token=self.config.upstream_api_token,
            timeout=self.config.upstream_timeout_seconds
        )
        self.refresher = SnapshotRefresher(
            self.store,
            self.fetcher,
            ttl_ms=self.config.cache_ttl_ms,
            metrics=self.metrics,
            clock=clock
        )

        self._setup_reports_routes()

    def _setup_reports_routes(self):
        """Set up reports-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "reports",
                "message": "Reports Cache Layer - Reports Service",
                "version": "1.0.0",
                "capabilities": ["snapshot_cache", "webhook_refresh", "projection"]
            }

        @self.app.options("/reports")
        async def reports_preflight():
            """CORS preflight."""
            return Response(status_code=204, headers=cors_headers())

        @self.app.get("/reports")
        async def get_reports(request: Request):
            """Serve a page of the collection snapshot."""
            return await self._serve_reports(request, verified_webhook=False)

        @self.app.post("/reports")
        async def post_reports(request: Request):
            """Webhook entry point; a verified signature forces a refresh."""
            verified = await self._verify_webhook(request)
            return await self._serve_reports(request, verified_webhook=verified)

    async def _verify_webhook(self, request: Request) -> bool:
        """Verify the CMS signature over the untransformed body."""
        body = await request.body()
        base64_encoded = request.headers.get("content-transfer-encoding", "").lower() == "base64"
        raw_body = decode_transport_body(body, base64_encoded)

        verified = verify_signature(
            raw_body,
            request.headers.get(SIGNATURE_HEADER, ""),
            self.webhook_secrets
        )

        self.metrics.increment_counter(
            "webhook_verifications_total",
            result="verified" if verified else "rejected"
        )
        if verified:
            self.logger.info("Webhook signature verified", body_bytes=len(raw_body))
        else:
            self.logger.warning("Webhook signature rejected; handling as a plain request")
        return verified

    async def _serve_reports(self, request: Request, verified_webhook: bool) -> Response:
        params = parse_query_parameters(request.query_params)

        try:
            resolution = await self.refresher.resolve(
                force_refresh=params.force_refresh,
                verified_webhook=verified_webhook
            )
            page = project(resolution.items, params)
        except ServiceException:
            raise
        except Exception as e:
            self.logger.error("Error serving reports", error=str(e), exc_info=True)
            self.metrics.record_error("REPORTS_ERROR")
            return error_response(str(e) or "Internal server error")

        payload = ReportsResponse(
            items=page.items,
            meta=ReportsMeta(
                limit=params.limit,
                offset=params.offset,
                total=page.total,
                has_more=page.has_more,
                filter=params.filter_label,
                exclude_slug=params.exclude_slug or "none",
                cached_at=format_cached_at(resolution.last_fetch_ms),
                from_cache=resolution.from_cache,
                cache_layer=resolution.cache_layer,
                webhook=WEBHOOK_VERIFIED if verified_webhook else WEBHOOK_NONE
            )
        )

        return JSONResponse(
            status_code=200,
            content=payload.model_dump(by_alias=True),
            headers={**cors_headers(), "Cache-Control": self._cache_control(request.method)}
        )

    def _cache_control(self, method: str) -> str:
        # Edge horizon, independent of the internal snapshot TTL
        if method == "GET":
            return (
                f"public, max-age={self.config.edge_max_age_seconds}, "
                f"stale-while-revalidate={self.config.edge_stale_while_revalidate_seconds}"
            )
        return "no-store"

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check reports service dependencies."""
        dependencies = {"cache_layer": self.store.cache_layer}

        if self.store.durable is not None:
            try:
                dependencies["redis"] = "ok" if await self.store.health_check() else "error"
            except Exception:
                dependencies["redis"] = "error"
        else:
            dependencies["redis"] = "not_configured"

        return dependencies

    async def stop(self):
        """Stop reports service components."""
        await self.store.stop()
        self.logger.info("Reports service stopped")


def create_app():
    """Create reports service application."""
    service = ReportsService()
    return service.app


if __name__ == "__main__":
    service = ReportsService()
    service.run()
