"""User interaction tools: AskUserQuestion and RequestCredential."""

import logging
from typing import Any

from toolhost.config import truncate
from toolhost.secret_mounts import CredentialRequest, CredentialRequester, maybe_await
from toolhost.tools import Tool, schema, str_arg
from toolhost.types import ToolContext, ToolResult

logger = logging.getLogger(__name__)

QUESTION_SUMMARY_LIMIT = 8000


def format_questions(questions: list[Any]) -> str:
    blocks = []
    for index, question in enumerate(questions, 1):
        if not isinstance(question, dict):
            blocks.append(f"Question {index}: (invalid)")
            continue
        options = "\n".join(
            f"  {n}. {option.get('label') or 'Option'} - {option.get('description') or ''}"
            for n, option in enumerate(question.get("options") or [], 1)
            if isinstance(option, dict)
        )
        blocks.append(f"Question {index}: {question.get('question') or ''}\n{options}")
    return "\n\n".join(blocks)


async def handle_ask_user(args: dict[str, Any], context: ToolContext) -> ToolResult:
    questions = args.get("questions")
    if not isinstance(questions, list) or not questions:
        return ToolResult.fail("questions array is required.")
    summary = truncate(format_questions(questions), QUESTION_SUMMARY_LIMIT)
    return ToolResult.ok("User input is required. Ask the user directly in chat.\n\n" + summary)


class UserTools:
    def __init__(self, request_credential: CredentialRequester | None = None):
        self.request_credential = request_credential

    async def handle_request_credential(
        self, args: dict[str, Any], context: ToolContext
    ) -> ToolResult:
        if self.request_credential is None:
            return ToolResult.fail("Credential requests are not supported on this device.")
        provider = str_arg(args, "provider").strip()
        if not provider:
            return ToolResult.fail("provider is required.")

        request = CredentialRequest(
            provider=provider,
            label=str_arg(args, "label") or provider,
            description=str_arg(args, "description") or None,
            placeholder=str_arg(args, "placeholder") or None,
        )
        try:
            response = await maybe_await(self.request_credential(request))
        except Exception as e:
            logger.warning(f"Credential request for {provider} failed: {e}")
            return ToolResult.fail(str(e) or "Credential request failed.")
        return ToolResult.ok({
            "secretId": response.secret_id,
            "provider": response.provider or provider,
            "label": response.label or request.label,
        })

    def tools(self) -> list[Tool]:
        return [
            Tool(
                name="AskUserQuestion",
                description="Ask the user one or more questions.",
                handler=handle_ask_user,
                parameters=schema({"questions": {"type": "array"}}, ["questions"]),
            ),
            Tool(
                name="RequestCredential",
                description="Ask the user to provide a credential for a provider.",
                handler=self.handle_request_credential,
                parameters=schema(
                    {
                        "provider": {"type": "string"},
                        "label": {"type": "string"},
                        "description": {"type": "string"},
                        "placeholder": {"type": "string"},
                    },
                    ["provider"],
                ),
            ),
        ]
