"""
Signal Pipeline FastAPI Interface

RESTful API for the decision and confirmation pipeline:
- Evaluation of indicator readings
- Candle ingestion and confirmation outcomes
- Indicator history (learning loop)
- Health & configuration
"""

from fastapi import FastAPI, HTTPException, Request, status
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import logging

from entrygate.decision_engine.schemas import MarketContext, MarketType, Precision, Timeframe
from entrygate.pipeline.runner import SignalPipeline

LOG = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models (Request Schemas)
# ============================================================================

class IndicatorReadingModel(BaseModel):
    """One indicator reading"""
    name: str = Field(..., description="Indicator name (e.g., trendlines)")
    signal: str = Field(..., description="buy, sell or neutral")
    strength: float = Field(..., description="Signal strength 0-100")
    found: bool = Field(True, description="Whether the indicator produced a reading")
    kind: Optional[str] = Field(None, description="Indicator family, resolved from name if omitted")
    details: Dict[str, Any] = Field(default_factory=dict, description="Indicator-specific details")


class EvaluateRequest(BaseModel):
    """Evaluation request"""
    readings: List[IndicatorReadingModel] = Field(..., description="Indicator readings")
    timeframe: Optional[str] = Field(None, description="30s, 1m, 5m or 15m (default: pipeline timeframe)")
    market_type: str = Field("regular", description="regular or otc")
    precision: str = Field("normal", description="low, normal or high")
    stream: str = Field("default", description="Decision stream")


class CandleRequest(BaseModel):
    """Closed candle"""
    open: float = Field(..., gt=0)
    high: float = Field(..., gt=0)
    low: float = Field(..., gt=0)
    close: float = Field(..., gt=0)
    timestamp: Optional[datetime] = None


class OutcomeRequest(BaseModel):
    """Observed outcome for one indicator"""
    indicator_name: str = Field(..., min_length=1)
    success: bool


# ============================================================================
# App factory
# ============================================================================

def create_app(pipeline: Optional[SignalPipeline] = None, start_pipeline: bool = False) -> FastAPI:
    """
    Create the FastAPI app around a pipeline instance.

    Args:
        pipeline: Pipeline to serve (new default pipeline if None)
        start_pipeline: Start the pipeline loops on app startup
    """
    app = FastAPI(
        title="EntryGate Signal Pipeline API",
        description="Indicator scoring, entry gating and candle confirmation",
        version="1.0.0"
    )
    app.state.pipeline = pipeline or SignalPipeline()

    @app.on_event("startup")
    async def startup_event():
        if start_pipeline:
            app.state.pipeline.start()
        LOG.info(f"Signal Pipeline API started (config hash {app.state.pipeline.config_hash})")

    @app.on_event("shutdown")
    async def shutdown_event():
        app.state.pipeline.stop()
        LOG.info("Signal Pipeline API shutting down")

    @app.get("/health")
    async def health_check(request: Request):
        """
        Health check endpoint.

        Returns:
            API status and pipeline health metrics
        """
        try:
            pipeline = _pipeline(request)
            return {
                "status": "healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "pipeline_health": pipeline.get_health(),
                "config_hash": pipeline.config_hash
            }
        except Exception as e:
            LOG.error(f"Health check failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=str(e)
            )

    @app.get("/config")
    async def get_config(request: Request):
        """Get current pipeline configuration"""
        pipeline = _pipeline(request)
        return {
            "config": pipeline.config.to_dict(),
            "config_hash": pipeline.config_hash,
            "engine_config_hash": pipeline.engine.config_hash
        }

    @app.post("/evaluate")
    async def evaluate(payload: EvaluateRequest, request: Request):
        """
        Evaluate indicator readings and register the decision for confirmation.

        Returns:
            Decision with audit trail
        """
        pipeline = _pipeline(request)
        try:
            context = MarketContext(
                timeframe=Timeframe(payload.timeframe) if payload.timeframe else pipeline.timeframe,
                market_type=MarketType(payload.market_type),
                precision=Precision(payload.precision)
            )
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        readings = [reading.model_dump() for reading in payload.readings]
        decision = pipeline.evaluate(readings, context=context, stream=payload.stream)
        return {
            "stream": payload.stream,
            "decision": decision.to_dict()
        }

    @app.get("/decision/{stream}")
    async def live_decision(stream: str, request: Request):
        """Current live decision of a stream"""
        decision = _pipeline(request).live_decision(stream)
        if decision is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No decision for stream {stream}"
            )
        return {"stream": stream, "decision": decision.to_dict()}

    @app.post("/candles")
    async def add_candle(candle: CandleRequest, request: Request):
        """
        Append a closed candle and run one confirmation tick.

        Returns:
            Candle index and confirmation outcomes of this tick
        """
        if candle.high < max(candle.open, candle.close) or candle.low > min(candle.open, candle.close):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Candle high/low must bound open and close"
            )

        pipeline = _pipeline(request)
        outcomes = pipeline.process_candle(
            candle.open, candle.high, candle.low, candle.close, candle.timestamp
        )
        return {
            "candle_index": pipeline.candle_log.latest_index,
            "outcomes": [o.to_dict() for o in outcomes]
        }

    @app.post("/outcomes")
    async def record_outcome(outcome: OutcomeRequest, request: Request):
        """Record a trade outcome for one indicator"""
        entry = _pipeline(request).record_outcome(outcome.indicator_name, outcome.success)
        return entry.to_dict()

    @app.get("/history")
    async def get_history(request: Request):
        """Indicator outcome history and trust factors"""
        snapshot = _pipeline(request).history.snapshot()
        return {
            "indicators": snapshot,
            "count": len(snapshot)
        }

    @app.get("/pending")
    async def get_pending(request: Request):
        """Signals waiting for candle confirmation"""
        pipeline = _pipeline(request)
        signals = pipeline.pending_signals()
        return {
            "signals": [s.to_dict() for s in signals],
            "count": len(signals)
        }

    return app


def _pipeline(request: Request) -> SignalPipeline:
    return request.app.state.pipeline


app = create_app()
