"""
AWS Lambda entrypoint for the Delivery Insight Collector

Event-driven handler triggered once a day by EventBridge Scheduler.
No HTTP server logic - just direct job invocation.
"""

import asyncio
import logging
from typing import Dict, Any, Optional

from app.jobs.insight_sync import parse_target_date, run_insight_collection
from app.orchestrator_insight import ALL_OPERATIONS, OPERATION_COMPLETED, OPERATION_CREATED

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SOURCE_OPERATIONS = {
    OPERATION_CREATED: (OPERATION_CREATED,),
    OPERATION_COMPLETED: (OPERATION_COMPLETED,),
    "all": ALL_OPERATIONS,
}


def lambda_handler(event: Optional[Dict[str, Any]], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda entrypoint for insight collection.

    Expected event payloads (from EventBridge Scheduler or other callers):
    - {"source": "created"}    process newly created deployments
    - {"source": "completed"}  process newly completed deployments
    - {"source": "all"}        both, concurrently

    Default is "all" if no source is provided. An optional "target_date"
    (unix seconds) pins the run to a specific UTC day.

    Args:
        event: Event payload from EventBridge or other AWS service
        context: Lambda context object

    Returns:
        Dictionary with statusCode, source, and result
    """
    payload = event or {}
    source = payload.get("source", "all")
    logger.info(f"Lambda invoked with source: {source}")

    try:
        operations = SOURCE_OPERATIONS.get(source)
        if operations is None:
            error_msg = f"Unknown source: {source}"
            logger.error(error_msg)
            raise ValueError(error_msg)

        result = asyncio.run(
            run_insight_collection(
                operations=operations,
                target_date=parse_target_date(payload.get("target_date")),
            )
        )

        if not result.get("success", False):
            logger.warning(f"Insight collection finished with errors: {result.get('errors')}")
            return {
                "statusCode": 500,
                "source": source,
                "result": result,
                "error": "; ".join(result.get("errors", [])) or "insight collection failed",
            }

        logger.info(f"Insight collection completed successfully: {result}")

        return {
            "statusCode": 200,
            "source": source,
            "result": result,
        }

    except Exception as e:
        logger.error(f"Lambda execution failed: {e}", exc_info=True)
        return {
            "statusCode": 500,
            "source": source,
            "error": str(e),
        }


# Allow local runs via `python -m app.handler`
if __name__ == "__main__":
    print("=" * 60)
    print("Delivery Insight Collector - Local Run")
    print("=" * 60)

    test_event = {"source": "all"}
    print(f"\nRunning with event: {test_event}")
    print("-" * 60)

    result = lambda_handler(test_event, None)

    print("\nResult:")
    print(result)
    print("=" * 60)
