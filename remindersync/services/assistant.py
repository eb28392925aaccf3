"""Text-generation assistant - suggest message text or search queries for a task."""

import os
import time
from typing import Optional
from langchain_anthropic import ChatAnthropic
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field

from remindersync.models.task import TaskType, Title
from remindersync.utils.config import AppConfig
from remindersync.utils.errors import AssistantError
from remindersync.utils.logging import get_structured_logger, sanitize_message_text

logger = get_structured_logger(__name__)


class AssistantRequest(BaseModel):
    """What the user asked the assistant about."""
    title: Title = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    type: TaskType = Field(default=TaskType.REMINDER, description="Task type")
    custom_instruction: Optional[str] = Field(None, max_length=500, description="Extra instruction from the user")


class AssistantResponse(BaseModel):
    """Suggested text; only ever offered for copying, never applied to the task."""
    result: str


def build_assistant_prompt(request: AssistantRequest) -> str:
    """Prompt for the task type: search help for web_search, a ready message for email/whatsapp."""
    details = request.description or "none"
    task_type = TaskType(request.type)

    if task_type == TaskType.WEB_SEARCH:
        prompt = f"""The user's task: "{request.title}".
Details: "{details}".
Goal: help them find the information.
Write the 3 most effective Google search queries for this task,
then one short expert tip on what to pay attention to."""
    elif task_type in (TaskType.EMAIL, TaskType.WHATSAPP):
        channel = "WhatsApp" if task_type == TaskType.WHATSAPP else "Email"
        prompt = f"""Role: personal business assistant.
Task: write the text of a message to send via {channel}.
Subject: "{request.title}".
Details: "{details}".

Requirements:
1. Style: polite, businesslike, concise.
2. No filler (do not write "Here is your text" or "Subject:").
3. Output only the finished text, ready to copy and send."""
    else:
        prompt = f"""Role: personal assistant.
The user's reminder: "{request.title}".
Details: "{details}".
Write a short, practical note (at most 5 lines) that helps them get this done."""

    if request.custom_instruction:
        prompt += f"\n\nAdditional instruction from the user: {request.custom_instruction.strip()}"
    return prompt


def get_llm_model(config: Optional[AppConfig] = None):
    """Get configured LLM chat model."""
    config = config or AppConfig.from_env()
    provider = config.llm_provider

    logger.debug("Getting LLM model", llm_provider=provider, llm_model=config.llm_model)

    if provider == "anthropic":
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise AssistantError("ANTHROPIC_API_KEY not set")
        return ChatAnthropic(model=config.llm_model, api_key=api_key)
    elif provider == "openai":
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise AssistantError("OPENAI_API_KEY not set")
        return ChatOpenAI(model=config.llm_model, api_key=api_key)
    else:
        raise AssistantError(f"Unsupported LLM provider: {provider}")


def _response_text(response) -> str:
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, list):
        # Anthropic may return content blocks
        content = "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return str(content or "").strip()


async def generate_suggestion(request: AssistantRequest, model=None) -> AssistantResponse:
    """Ask the chat model for a suggestion. Raises AssistantError on any failure."""
    model = model or get_llm_model()
    prompt = build_assistant_prompt(request)

    logger.info(
        "Assistant request started",
        task_type=TaskType(request.type).value,
        title_preview=sanitize_message_text(request.title, max_length=50),
        prompt_size_chars=len(prompt)
    )

    start_time = time.time()
    try:
        response = await model.ainvoke(prompt)
    except Exception as e:
        logger.error("Assistant request failed", error=str(e), exc_info=True)
        raise AssistantError(f"Assistant request failed: {e}")

    text = _response_text(response)
    if not text:
        raise AssistantError("Assistant returned no text")

    logger.info(
        "Assistant response received",
        llm_latency_ms=round((time.time() - start_time) * 1000, 2),
        result_length=len(text)
    )
    return AssistantResponse(result=text)
