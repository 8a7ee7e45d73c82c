"""API Routes Module

Provides RESTful API endpoints for starting, cancelling and inspecting
credential validation runs.
"""

# Third-party imports
from pydantic import ValidationError as PydanticValidationError
from sanic import Blueprint, response
from sanic.request import Request

# Local imports
from keyprobe import logger
from keyprobe.exceptions import StateError, ValidationError
from keyprobe.models import CredentialStatus, ProviderType, RunRequest
from keyprobe.services import model_service
from keyprobe.services.batch_service import batch_controller

api_bp = Blueprint("api", url_prefix="/api")


def _error(message: str, status: int):
    return response.json({"success": False, "error": message}, status=status)


@api_bp.route("/runs", methods=["POST"])
async def start_run(request: Request):
    """Start a validation run, or cancel the active one.

    JSON body:
        - provider: openai / claude / gemini
        - model: Target model name
        - keys: Newline separated API keys
        - proxy_base_url: Optional API base URL override
        - concurrency_limit: Optional concurrent tests
        - max_retries: Optional retries per key

    Returns:
        202 with the run summary when a run was started, 200 with
        ``cancelled: true`` when the call toggled cancellation
    """
    try:
        run_request = RunRequest.model_validate(request.json or {})
        run, job = batch_controller.launch(run_request)
    except PydanticValidationError as e:
        return _error(f"Invalid parameter: {e.errors()[0]['msg']}", 400)
    except ValidationError as e:
        return _error(str(e), 400)

    if job is None:
        return response.json({"success": True, "cancelled": True, "data": run.to_dict()})

    request.app.add_task(job)
    return response.json({"success": True, "cancelled": False, "data": run.to_dict()}, status=202)


@api_bp.route("/runs/cancel", methods=["POST"])
async def cancel_run(request: Request):
    """Request cancellation of the active run; no-op when idle."""
    cancelled = batch_controller.cancel()
    return response.json({"success": True, "cancelled": cancelled})


@api_bp.route("/runs/current", methods=["GET"])
async def get_current_run(request: Request):
    """Get progress and status counts of the current run.

    Returns:
        JSON response with total, completed, progress, duplicates, flags and
        counts by status
    """
    run = batch_controller.current
    if run is None:
        return _error("No batch run", 404)
    return response.json({"success": True, "data": run.to_dict()})


@api_bp.route("/runs/current", methods=["DELETE"])
async def clear_current_run(request: Request):
    """Forget the finished run and its credentials."""
    try:
        batch_controller.clear()
    except StateError as e:
        return _error(str(e), 409)
    return response.json({"success": True})


@api_bp.route("/runs/current/keys", methods=["GET"])
async def get_run_keys(request: Request):
    """Get per-credential results of the current run.

    Query Parameters:
        - status: Filter by status (pending/testing/retrying/valid/invalid/rate_limited/paid)

    Returns:
        JSON response with list of credential results
    """
    run = batch_controller.current
    if run is None:
        return _error("No batch run", 404)

    status = request.args.get("status")
    try:
        credentials = (
            run.credentials_with(CredentialStatus(status)) if status else run.credentials
        )
    except ValueError:
        return _error(f"Invalid parameter: unknown status {status}", 400)

    data = [cred.to_dict() for cred in credentials]
    return response.json({"success": True, "count": len(data), "data": data})


@api_bp.route("/models/defaults", methods=["GET"])
async def get_default_models(request: Request):
    """Get suggested model names, for one provider or all of them."""
    provider = request.args.get("provider")
    try:
        if provider:
            data = model_service.default_models(ProviderType(provider.lower()))
        else:
            data = model_service.all_default_models()
    except ValueError:
        return _error(f"Invalid parameter: unknown provider {provider}", 400)
    return response.json({"success": True, "data": data})


@api_bp.route("/models", methods=["POST"])
async def list_models(request: Request):
    """List models available to one key.

    JSON body:
        - provider: openai / claude / gemini
        - key: API key
        - proxy_base_url: Optional API base URL override
    """
    body = request.json or {}
    try:
        provider = ProviderType(str(body.get("provider", "")).lower())
    except ValueError:
        return _error("Invalid parameter: provider", 400)
    key = str(body.get("key") or "").strip()
    if not key:
        return _error("Invalid parameter: key", 400)

    try:
        models = await model_service.list_models(
            provider, key, proxy_base_url=body.get("proxy_base_url") or None
        )
        return response.json({"success": True, "count": len(models), "data": models})
    except Exception as e:
        logger.error(f"Error in list_models: {e}", exc_info=True)
        return _error(str(e), 500)


@api_bp.route("/metrics", methods=["GET"])
async def get_metrics(request: Request):
    """Expose current run progress in Prometheus text format."""
    run = batch_controller.current
    lines = [
        "# HELP keyprobe_run_in_progress Whether a validation run is active",
        "# TYPE keyprobe_run_in_progress gauge",
        f"keyprobe_run_in_progress {1 if run is not None and run.in_progress else 0}",
    ]
    if run is not None:
        lines.extend(
            [
                "",
                "# HELP keyprobe_run_keys_total Unique keys in the current run",
                "# TYPE keyprobe_run_keys_total gauge",
                f"keyprobe_run_keys_total {run.total_count}",
                "",
                "# HELP keyprobe_run_keys_completed Keys that reached a final status",
                "# TYPE keyprobe_run_keys_completed gauge",
                f"keyprobe_run_keys_completed {run.completed_count}",
                "",
                "# HELP keyprobe_run_keys Keys by status",
                "# TYPE keyprobe_run_keys gauge",
            ]
        )
        for status, count in run.count_by_status().items():
            lines.append(f'keyprobe_run_keys{{status="{status}"}} {count}')

    return response.text("\n".join(lines), content_type="text/plain; charset=utf-8")
