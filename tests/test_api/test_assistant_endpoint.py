"""Tests for the assistant endpoint."""

import json
import pytest
from unittest.mock import AsyncMock, patch

from api.assistant import handler
from remindersync.services.assistant import AssistantResponse
from remindersync.utils.errors import AssistantError
from tests.utils.assertions import assert_valid_response
from tests.utils.helpers import create_vercel_request


@pytest.mark.unit
def test_assistant_endpoint_returns_suggestion():
    request = create_vercel_request(body={"title": "Ask for invoice", "type": "email"})

    with patch('api.assistant.generate_suggestion', new_callable=AsyncMock) as mock_generate:
        mock_generate.return_value = AssistantResponse(result="Dear team, ...")
        response = handler(request)

    assert_valid_response(response, 200)
    assert json.loads(response["body"]) == {"result": "Dear team, ..."}
    assert response["headers"]["Access-Control-Allow-Origin"] == "*"
    sent = mock_generate.await_args[0][0]
    assert sent.title == "Ask for invoice"


@pytest.mark.unit
def test_assistant_endpoint_rejects_invalid_body():
    response = handler(create_vercel_request(body={"title": "   "}))

    assert_valid_response(response, 400)
    assert "error" in json.loads(response["body"])


@pytest.mark.unit
def test_assistant_endpoint_rejects_malformed_json():
    response = handler(create_vercel_request(body="{not json"))

    assert_valid_response(response, 400)


@pytest.mark.unit
def test_assistant_endpoint_reports_assistant_failure():
    request = create_vercel_request(body={"title": "Plan trip", "type": "web_search"})

    with patch('api.assistant.generate_suggestion', new_callable=AsyncMock) as mock_generate:
        mock_generate.side_effect = AssistantError("ANTHROPIC_API_KEY not set")
        response = handler(request)

    assert_valid_response(response, 500)
    assert json.loads(response["body"]) == {"error": "ANTHROPIC_API_KEY not set"}


@pytest.mark.unit
def test_assistant_endpoint_answers_preflight():
    response = handler(create_vercel_request(method="OPTIONS", body=""))

    assert response["statusCode"] == 204
    assert "POST" in response["headers"]["Access-Control-Allow-Methods"]
