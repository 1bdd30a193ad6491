"""
services/mlflow_service.py
--------------------------
Optional MLflow tracking of completed chat turns.

Enabled only when MLFLOW_TRACKING_URI is set. Each finished turn becomes one
run in the "assistant-platform-chat" experiment:
  - Parameters: model, tenant_id, user_id, chatbot_id, reasoning flag
  - Metrics:    prompt / completion tokens, estimated cost, latency
  - Tags:       conversation id, environment

View the MLflow UI:
  mlflow ui --port 5001
"""

from typing import Optional

from assistant_platform.core.config import settings
from assistant_platform.core.logging import get_logger

logger = get_logger(__name__)

EXPERIMENT_NAME = "assistant-platform-chat"


def tracking_enabled() -> bool:
    return bool(settings.MLFLOW_TRACKING_URI)


def _get_mlflow():
    """
    Lazy import mlflow so the app still starts if mlflow isn't installed.
    Returns the mlflow module or None.
    """
    try:
        import mlflow
        return mlflow
    except ImportError:
        logger.warning("mlflow not installed, tracking disabled. Run: pip install '.[tracking]'")
        return None


def setup_mlflow() -> None:
    """Called once at application startup. Creates the experiment if missing."""
    if not tracking_enabled():
        return
    mlflow = _get_mlflow()
    if mlflow is None:
        return

    try:
        mlflow.set_tracking_uri(settings.MLFLOW_TRACKING_URI)
        if mlflow.get_experiment_by_name(EXPERIMENT_NAME) is None:
            mlflow.create_experiment(EXPERIMENT_NAME)
            logger.info("MLflow experiment created", experiment=EXPERIMENT_NAME)
        mlflow.set_experiment(EXPERIMENT_NAME)
    except Exception as exc:
        logger.warning("MLflow setup failed (non-fatal)", error=str(exc))
        return
    logger.info("MLflow tracking initialised", uri=settings.MLFLOW_TRACKING_URI)


def track_completion(
    *,
    model: str,
    tenant_id: str,
    user_id: str,
    conversation_id: str,
    chatbot_id: Optional[str],
    prompt_tokens: int,
    completion_tokens: int,
    estimated_cost: float,
    latency_ms: float,
    reasoning: bool = False,
) -> Optional[str]:
    """
    Log one completed turn as an MLflow run.

    Returns:
        The MLflow run_id, or None when tracking is off or failed.
    """
    if not tracking_enabled():
        return None
    mlflow = _get_mlflow()
    if mlflow is None:
        return None

    try:
        mlflow.set_experiment(EXPERIMENT_NAME)
        with mlflow.start_run() as run:
            mlflow.log_params({
                "model":       model,
                "tenant_id":   tenant_id,
                "user_id":     user_id,
                "chatbot_id":  chatbot_id or "none",
                "reasoning":   reasoning,
            })
            mlflow.log_metrics({
                "prompt_tokens":     float(prompt_tokens),
                "completion_tokens": float(completion_tokens),
                "estimated_cost":    estimated_cost,
                "latency_ms":        latency_ms,
            })
            mlflow.set_tags({
                "conversation_id": conversation_id,
                "environment":     settings.APP_ENV,
            })
            run_id = run.info.run_id
            logger.debug("MLflow run logged", run_id=run_id)
            return run_id

    except Exception as exc:
        # Never let tracking failures break the turn
        logger.warning("MLflow tracking failed (non-fatal)", error=str(exc))
        return None
