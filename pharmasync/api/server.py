"""
FastAPI server for pharmasync.

Provides product search, product/stock lookups and the admin sync surface.

Usage:
    uvicorn pharmasync.api.server:app --port 8000
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from pharmasync import __version__
from pharmasync.api.models import (
    HealthResponse,
    SchedulerActionResponse,
    SearchResponse,
    StockResponse,
    SyncRequest,
    SyncResponse,
)
from pharmasync.core.config import get_config
from pharmasync.errors import SyncError
from pharmasync.services import Services, build_services
from pharmasync.utils.logger import get_logger

logger = get_logger("api.server")

SCHEDULER_ACTIONS = ("start", "stop", "restart")


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialised")
    return services


def create_app(services: Optional[Services] = None, start_scheduler: Optional[bool] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        services: Pre-built services (tests); built from get_config() at
            startup when omitted
        start_scheduler: Override config.enable_scheduler
    """
    app = FastAPI(
        title="pharmasync API",
        description="Pharmaceutical catalog sync and drug-aware product search",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = services

    @app.on_event("startup")
    async def startup_event():
        if app.state.services is None:
            logger.info("Server starting up - building services...")
            app.state.services = build_services(get_config())
        svc = app.state.services
        run_scheduler = svc.config.enable_scheduler if start_scheduler is None else start_scheduler
        if run_scheduler:
            svc.scheduler.start()
        else:
            logger.info("Scheduler disabled; syncs run only on demand")

    @app.on_event("shutdown")
    async def shutdown_event():
        svc = app.state.services
        if svc is not None and svc.scheduler.is_running:
            await svc.scheduler.stop()

    @app.get("/health", response_model=HealthResponse)
    async def health(svc: Services = Depends(get_services)):
        """Health check with database and cache status."""
        db_ok = await asyncio.to_thread(svc.store.ping)
        products = await asyncio.to_thread(svc.store.count_products) if db_ok else 0
        if svc.hot_cache.available:
            cache = "redis" if await asyncio.to_thread(svc.hot_cache.ping) else "database_fallback"
        else:
            cache = "disabled"
        return HealthResponse(
            status="healthy" if db_ok else "unhealthy",
            version=__version__,
            database="connected" if db_ok else "disconnected",
            cache=cache,
            products=products,
            scheduler_running=svc.scheduler.is_running,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.get("/api/search", response_model=SearchResponse)
    async def search(
        q: str = Query(..., min_length=1, description="Search text"),
        limit: Optional[int] = Query(None, ge=1, le=50),
        threshold: Optional[float] = Query(None, ge=0.0, le=1.0),
        category: Optional[str] = None,
        realtime: bool = False,
        svc: Services = Depends(get_services),
    ):
        result = await svc.search.search(
            q,
            limit=limit or svc.config.search_default_limit,
            threshold=threshold,
            category=category,
            real_time_stock=realtime,
        )
        return SearchResponse(
            query=q,
            results=[p.to_dict() for p in result.products],
            total=result.total,
            metadata=result.metadata,
        )

    @app.get("/api/products/{product_id}")
    async def get_product(product_id: str, realtime: bool = False, svc: Services = Depends(get_services)):
        product = await svc.search.get_by_id(product_id, real_time=realtime)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return product

    @app.get("/api/products/{product_id}/stock", response_model=StockResponse)
    async def check_stock(
        product_id: str,
        quantity: int = Query(1, ge=1),
        realtime: bool = False,
        alternatives: bool = True,
        svc: Services = Depends(get_services),
    ):
        result = await svc.search.check_stock(
            product_id, quantity=quantity, real_time=realtime, suggest_alternatives=alternatives
        )
        if result.get("error") == "Product not found":
            raise HTTPException(status_code=404, detail="Product not found")
        return result

    @app.get("/api/admin/sync-status")
    async def sync_status(svc: Services = Depends(get_services)):
        status = await svc.scheduler.get_sync_status()
        status["metrics"] = svc.metrics.get_summary()
        return {"success": True, **status}

    @app.post("/api/admin/sync", response_model=SyncResponse)
    async def manual_sync(request: SyncRequest, svc: Services = Depends(get_services)):
        logger.info(f"Manual {request.type} sync requested")
        try:
            if request.type == "all":
                result = await svc.scheduler.run_all_syncs_now()
                return SyncResponse(success=True, message="stock and catalog syncs completed", result=result)
            stats = await svc.scheduler.run_manual_sync(request.type, request.options.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except SyncError as e:
            logger.error(f"Manual sync failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return SyncResponse(success=True, message=f"{request.type} sync completed", result=stats.to_dict())

    @app.post("/api/admin/cache/clear")
    async def clear_cache(svc: Services = Depends(get_services)):
        result = await svc.resolver.clear_all_caches()
        return {"success": True, "message": "All caches cleared", **result}

    @app.post("/api/admin/scheduler/{action}", response_model=SchedulerActionResponse)
    async def scheduler_action(action: str, svc: Services = Depends(get_services)):
        if action not in SCHEDULER_ACTIONS:
            raise HTTPException(
                status_code=400,
                detail={"error": "Invalid action", "valid_actions": list(SCHEDULER_ACTIONS)},
            )
        if action in ("stop", "restart"):
            await svc.scheduler.stop()
        if action in ("start", "restart"):
            svc.scheduler.start()
        return SchedulerActionResponse(success=True, action=action, status=svc.scheduler.get_status())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pharmasync.api.server:app", host="0.0.0.0", port=8000)
