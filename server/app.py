import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from loguru import logger

from common.constants import HEALTH_ENDPOINT, NETWORKS
from common.utils import get_network, is_valid_ss58_address
from engine.config import EngineConfig
from engine.dashboard import Dashboard
from engine.errors import DirectoryFetchFailed, EraUnavailable
from engine.suggestions import performance_tier

DashboardFactory = Callable[[EngineConfig], Dashboard]


class StatisticsRequest(BaseModel):
    addresses: List[str]


class NetworkOut(BaseModel):
    name: str
    unit: str
    decimals: int
    ss58: int
    endpoints: Dict[str, str]


class EraOut(BaseModel):
    network: str
    era: int


class DirectoryOut(BaseModel):
    network: str
    era: int
    averageCommission: float
    activeCount: int
    total: int
    validators: List[Dict[str, Any]]


class StatisticsOut(BaseModel):
    network: str
    era: int
    statistics: Dict[str, Dict[str, Any]]


class SummaryOut(BaseModel):
    network: str
    era: int
    totalValidators: int
    activeValidators: int
    averageCommission: float
    averagePerformance: float
    averageEraPoints: float
    totalEraPoints: int
    topPerformers: List[Dict[str, Any]]


class AdvisoriesOut(BaseModel):
    address: str
    identity: str
    rank: int
    rankSegment: int
    tier: str
    advisories: List[Dict[str, str]]


def create_app(cfg: Optional[EngineConfig] = None, dashboard_factory: Optional[DashboardFactory] = None) -> FastAPI:
    cfg = cfg or EngineConfig()
    factory = dashboard_factory or Dashboard

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("API ready.")
        try:
            yield
        finally:
            for dashboard in app.state.dashboards.values():
                await dashboard.stop()
            logger.info("API shutdown complete.")

    app = FastAPI(title="Validator Insight API", version="0.1.0", lifespan=lifespan)
    app.state.cfg = cfg
    app.state.dashboards = {}
    app.state.dashboard_locks = {}

    @app.exception_handler(EraUnavailable)
    async def era_unavailable(request: Request, exc: EraUnavailable):
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})

    @app.exception_handler(DirectoryFetchFailed)
    async def directory_failed(request: Request, exc: DirectoryFetchFailed):
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})

    async def dashboard_for(network: str) -> Dashboard:
        try:
            get_network(network)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        # concurrent first requests for a network must share one dashboard
        async with app.state.dashboard_locks.setdefault(network, asyncio.Lock()):
            dashboard = app.state.dashboards.get(network)
            if dashboard is None:
                dashboard = factory(replace(cfg, network=network))
                await dashboard.start()
                app.state.dashboards[network] = dashboard
        return dashboard

    def check_address(address: str):
        if not is_valid_ss58_address(address):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Malformed address {address}",
            )

    @app.get(HEALTH_ENDPOINT)
    async def health():
        return {"status": "ok", "networks": sorted(app.state.dashboards)}

    @app.get("/networks", response_model=List[NetworkOut])
    async def networks():
        return [
            NetworkOut(
                name=n["name"],
                unit=n["unit"],
                decimals=n["units"],
                ss58=n["ss58"],
                endpoints=n["endpoints"],
            )
            for n in NETWORKS.values()
        ]

    @app.get("/networks/{network}/era", response_model=EraOut)
    async def current_era(network: str):
        dashboard = await dashboard_for(network)
        era = await dashboard.resolve_era()
        return EraOut(network=network, era=era)

    @app.get("/networks/{network}/validators", response_model=DirectoryOut)
    async def validators(network: str, page: Optional[int] = None):
        """Directory of the current era, one page of it when `page` is given"""
        dashboard = await dashboard_for(network)
        await dashboard.resolve_era()
        directory = await dashboard.get_directory()
        listed = directory.validators if page is None else directory.page(page, cfg.page_size)
        return DirectoryOut(
            network=network,
            era=directory.era,
            averageCommission=directory.average_commission,
            activeCount=directory.active_count,
            total=len(directory.validators),
            validators=[v.to_dict() for v in listed],
        )

    @app.post("/networks/{network}/statistics", response_model=StatisticsOut)
    async def statistics(network: str, body: StatisticsRequest):
        for address in body.addresses:
            check_address(address)
        dashboard = await dashboard_for(network)
        await dashboard.resolve_era()
        stats = await dashboard.statistics_for(body.addresses)
        return StatisticsOut(
            network=network,
            era=dashboard.era,
            statistics={address: entry.to_dict() for address, entry in stats.items()},
        )

    @app.get("/networks/{network}/summary", response_model=SummaryOut)
    async def summary(network: str):
        dashboard = await dashboard_for(network)
        await dashboard.resolve_era()
        result = await dashboard.summary()
        return SummaryOut(
            network=network,
            era=dashboard.era,
            totalValidators=result.total_validators,
            activeValidators=result.active_validators,
            averageCommission=result.average_commission,
            averagePerformance=result.average_performance,
            averageEraPoints=result.average_era_points,
            totalEraPoints=result.total_era_points,
            topPerformers=[s.to_dict() for s in result.top_performers],
        )

    @app.get("/networks/{network}/validators/{address}/advisories", response_model=AdvisoriesOut)
    async def advisories(network: str, address: str):
        check_address(address)
        dashboard = await dashboard_for(network)
        await dashboard.resolve_era()
        directory = await dashboard.get_directory()
        validator = directory.get(address)
        if validator is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown validator {address}")

        stats = (await dashboard.statistics_for([address])).get(address)
        if stats is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Statistics unavailable for {address}",
            )
        return AdvisoriesOut(
            address=address,
            identity=validator.identity,
            rank=validator.rank,
            rankSegment=directory.rank_segment(address),
            tier=performance_tier(stats.performance),
            advisories=[a.to_dict() for a in dashboard.advisories(stats)],
        )

    logger.info(f"API initialized for default network {cfg.network}")
    return app


def run():
    cfg = EngineConfig()
    app = create_app(cfg)

    logger.info(f"Starting API on {cfg.api_host}:{cfg.api_port}")
    uvicorn.run(app, host=cfg.api_host, port=cfg.api_port)


if __name__ == "__main__":
    run()
