"""Test helper functions."""

import json
from typing import Any, Dict
from unittest.mock import MagicMock, patch


def create_vercel_request(
    method: str = "POST",
    path: str = "/api/assistant",
    body: Dict[str, Any] = None,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """Create a Vercel request object for testing."""
    if body is None:
        body = {}

    if headers is None:
        headers = {
            "content-type": "application/json"
        }

    return {
        "method": method,
        "path": path,
        "headers": headers,
        "body": json.dumps(body) if isinstance(body, dict) else body,
        "query": {}
    }


def patch_supabase(module: str, client):
    """Patch ``module.SupabaseClient`` so ``async with`` yields ``client``."""
    patcher = patch(f"{module}.SupabaseClient")
    mock_client_class = patcher.start()
    mock_client_class.return_value.__aenter__.return_value = client
    mock_client_class.return_value.__aexit__.return_value = None
    return patcher


def fake_llm_response(text):
    """Chat model response with a ``content`` attribute."""
    response = MagicMock()
    response.content = text
    return response
