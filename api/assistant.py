"""Assistant endpoint - suggest text for a task (Vercel serverless function)."""

import json
import asyncio
from pydantic import ValidationError

from remindersync.services.assistant import AssistantRequest, generate_suggestion
from remindersync.utils.errors import AssistantError
from remindersync.utils.logging import get_structured_logger
from remindersync.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
logger = get_structured_logger(__name__)

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _response(status_code: int, payload: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": CORS_HEADERS,
        "body": json.dumps(payload)
    }


def handler(request):
    """
    Generate a suggestion for a task.

    Body: {"title", "description", "type", "custom_instruction"}.
    Returns {"result": text} on success, {"error": message} otherwise.
    """
    if (request.get("method") or "POST").upper() == "OPTIONS":
        return {"statusCode": 204, "headers": CORS_HEADERS, "body": ""}

    try:
        body = request.get("body") or "{}"
        payload = json.loads(body) if isinstance(body, (str, bytes)) else body
        assistant_request = AssistantRequest.model_validate(payload)
    except (ValueError, ValidationError) as e:
        logger.warning("Invalid assistant request", error=str(e))
        return _response(400, {"error": f"Invalid request: {e}"})

    try:
        response = asyncio.run(generate_suggestion(assistant_request))
    except AssistantError as e:
        logger.error("Assistant endpoint failed", error=str(e))
        return _response(500, {"error": str(e)})

    return _response(200, {"result": response.result})
