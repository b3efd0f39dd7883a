"""GraphQL-shaped entry point over the chat service.

This is not a GraphQL engine. The query text is lexed just enough to find the
operation type and the identifiers it mentions (comments and string literals
are ignored, identifiers match as whole words), and the first matching
operation below is run:

    mutation ... sendMessage   -> chat completion (never streamed)
    ... health ...             -> health payload
    ... chatHistory ...        -> stored usage records

Selection sets are not applied: the whole result object is returned as
``data``. Errors come back as ``{"data": null, "errors": [{"message"}]}`` with
HTTP 400, unlike the always-200 convention of GraphQL servers.
"""
import logging
import re
from typing import Any, Dict, Mapping, Optional, Set, Tuple

from errors import GatewayError, ValidationError
from service import ChatService

logger = logging.getLogger("deepseek-gateway.graphql")

SCHEMA_SDL = """
type Query {
  health: HealthStatus!
  chatHistory(limit: Int = 10, offset: Int = 0): [ChatLogEntry!]!
}

type Mutation {
  sendMessage(input: ChatInput!): ChatResponse!
}

input ChatInput {
  messages: [MessageInput!]!
  model: String
  max_tokens: Int
  temperature: Float
  top_p: Float
  frequency_penalty: Float
  presence_penalty: Float
  stop: [String!]
}

input MessageInput {
  role: String!
  content: String!
}

type HealthStatus {
  status: String!
  timestamp: String!
  service: String!
  version: String!
}

type Usage {
  prompt_tokens: Int
  completion_tokens: Int
  total_tokens: Int
}

type Choice {
  index: Int!
  message: Message!
  finish_reason: String
}

type Message {
  role: String!
  content: String!
}

type ChatResponse {
  id: String!
  object: String
  created: Int
  model: String!
  choices: [Choice!]!
  usage: Usage
}

type ChatLogEntry {
  timestamp: String!
  model: String!
  messagesCount: Int!
  tokensUsed: Usage
  requestId: String
}
""".strip()

OPERATION_TYPES = ("query", "mutation", "subscription")

_BLOCK_STRING = re.compile(r'"""(?:\\"""|[^"]|"(?!""))*"""')
_STRING = re.compile(r'"(?:\\.|[^"\\\n])*"')
_COMMENT = re.compile(r"#[^\n\r]*")
_NAME = re.compile(r"[_A-Za-z][_0-9A-Za-z]*")


class UnsupportedOperationError(GatewayError):
    def __init__(self):
        super().__init__("Unsupported GraphQL operation")


def scan_query(query: str) -> Tuple[str, Set[str]]:
    """Return the operation type and the set of identifiers in a query document."""
    text = _BLOCK_STRING.sub(" ", query)
    text = _STRING.sub(" ", text)
    text = _COMMENT.sub(" ", text)
    names = _NAME.findall(text)
    operation_type = names[0] if names and names[0] in OPERATION_TYPES else "query"
    return operation_type, set(names)


def select_operation(query: str) -> str:
    operation_type, names = scan_query(query)
    if operation_type == "mutation" and "sendMessage" in names:
        return "sendMessage"
    if "health" in names:
        return "health"
    if "chatHistory" in names:
        return "chatHistory"
    raise UnsupportedOperationError()


class GraphQLShim:
    def __init__(self, service: ChatService):
        self.service = service

    async def execute(self, query: Any, variables: Optional[Mapping[str, Any]] = None) -> Any:
        """Run the operation the query names and return the ``data`` value."""
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("GraphQL query is required")
        variables = variables if isinstance(variables, Mapping) else {}

        operation = select_operation(query)
        logger.info(f"GraphQL operation: {operation}")

        if operation == "sendMessage":
            return await self._send_message(variables.get("input"))
        if operation == "health":
            return self.service.health()
        return await self.service.chat_history(variables.get("limit"), variables.get("offset"))

    async def _send_message(self, chat_input: Any) -> Dict[str, Any]:
        chat_request, options = self.service.prepare(chat_input, force_stream=False)
        data, entry = await self.service.complete(chat_request, options)
        await self.service.record(entry)
        return data
