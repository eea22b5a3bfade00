"""
Start Signal Pipeline API Server

Run the EntryGate Signal Pipeline REST API on port 8010.
"""

import uvicorn
import logging
import sys
from pathlib import Path

from entrygate.confirmation.candle_sources import SimulatedCandleSource
from entrygate.pipeline.api import create_app
from entrygate.pipeline.config import PipelineConfig
from entrygate.pipeline.runner import SignalPipeline

# Ensure logs directory exists
Path("logs").mkdir(exist_ok=True)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('logs/signal_pipeline_api.log')
    ]
)

logger = logging.getLogger(__name__)


def main():
    """Start Signal Pipeline API server"""
    simulate = "--simulate" in sys.argv

    logger.info("=" * 80)
    logger.info("ENTRYGATE SIGNAL PIPELINE API")
    logger.info("=" * 80)
    logger.info("Starting server on http://127.0.0.1:8010")
    logger.info("Swagger UI: http://127.0.0.1:8010/docs")
    logger.info(f"Candle source: {'simulated' if simulate else 'POST /candles'}")
    logger.info("=" * 80)

    pipeline = SignalPipeline(
        PipelineConfig(),
        candle_source=SimulatedCandleSource() if simulate else None
    )
    app = create_app(pipeline, start_pipeline=True)

    try:
        uvicorn.run(
            app,
            host="127.0.0.1",
            port=8010,
            log_level="info",
            reload=False
        )
    except KeyboardInterrupt:
        logger.info("\nShutting down Signal Pipeline API...")
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
