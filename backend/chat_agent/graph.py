"""
Chat agent using LangGraph and Google Gemini.

Features: tool-using assistant, trimmed history, prompt caching hints.
Flow: START → agent ⇄ tools → END
"""

import logging
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, List, Sequence, TypedDict

from typing_extensions import Annotated

from langchain.chat_models import init_chat_model
from langchain_core.callbacks import BaseCallbackHandler
from langchain_core.messages import AnyMessage, BaseMessage, HumanMessage, SystemMessage, trim_messages
from langchain_core.outputs import LLMResult
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_core.runnables import Runnable
from langchain_core.tools import BaseTool
from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import StateGraph, START, END
from langgraph.graph.message import add_messages
from langgraph.prebuilt import ToolNode

from chat_agent.config import Settings, get_settings
from chat_agent.system_message import SYSTEM_MESSAGE
from chat_agent.tools import load_tools

logger = logging.getLogger(__name__)

EPHEMERAL_CACHE = {"type": "ephemeral"}


class State(TypedDict):
    """Agent conversation state."""
    messages: Annotated[list[AnyMessage], add_messages]  # Conversation history incl. tool calls


class UsageLoggingHandler(BaseCallbackHandler):
    """Logs the start and end of every model call with its token usage."""

    def on_chat_model_start(self, serialized: Dict[str, Any], messages: List[List[BaseMessage]], **kwargs: Any) -> None:
        logger.info("🤖 Starting LLM call...")

    def on_llm_end(self, response: LLMResult, **kwargs: Any) -> None:
        usage = None
        for generations in response.generations:
            for generation in generations:
                message = getattr(generation, "message", None)
                usage = getattr(message, "usage_metadata", None) or usage
        if usage:
            logger.info(
                f"📊 Token usage: input={usage.get('input_tokens')} "
                f"output={usage.get('output_tokens')} total={usage.get('total_tokens')}"
            )
        else:
            logger.info("🤖 End LLM call")


def create_trimmer(max_messages: int) -> Runnable:
    """Keep the most recent messages, counting each message as one token."""
    return trim_messages(
        max_tokens=max_messages,
        strategy="last",
        token_counter=len,
        include_system=True,
        allow_partial=False,
        start_on="human",
    )


def _with_cache_control(message: BaseMessage) -> BaseMessage:
    content = message.content
    if isinstance(content, str):
        blocks = [{"type": "text", "text": content, "cache_control": EPHEMERAL_CACHE}]
    else:
        blocks = [dict(b) if isinstance(b, dict) else {"type": "text", "text": str(b)} for b in content]
        if blocks:
            blocks[-1]["cache_control"] = EPHEMERAL_CACHE
    return message.model_copy(update={"content": blocks})


def add_caching_headers(messages: Sequence[BaseMessage]) -> List[BaseMessage]:
    """Mark the last message and the second-to-last human message as cacheable.

    Returns copies; the input messages are left untouched.
    """
    if not messages:
        return list(messages)

    cached = list(messages)
    cached[-1] = _with_cache_control(cached[-1])

    human_count = 0
    for i in range(len(cached) - 1, -1, -1):
        if isinstance(cached[i], HumanMessage):
            human_count += 1
            if human_count == 2:
                cached[i] = _with_cache_control(cached[i])
                break

    return cached


def should_continue(state: State):
    """Route to the tools node when the model asked for tool calls."""
    last_message = state["messages"][-1]
    if getattr(last_message, "tool_calls", None):
        return "tools"
    return END


def initialise_model(settings: Settings, tools: Sequence[BaseTool]):
    """Gemini chat model with usage logging, bound to the given tools."""
    model = init_chat_model(
        f"google_genai:{settings.model_name}",
        temperature=settings.temperature,
        max_tokens=settings.max_output_tokens,
        max_retries=settings.max_retries,
        callbacks=[UsageLoggingHandler()],
    )
    if tools:
        model = model.bind_tools(list(tools))
    return model


def create_workflow(model: Runnable, tools: Sequence[BaseTool], trim_max_messages: int = 10) -> StateGraph:
    trimmer = create_trimmer(trim_max_messages)
    prompt_template = ChatPromptTemplate.from_messages(
        [SystemMessage(content=SYSTEM_MESSAGE), MessagesPlaceholder("messages")]
    )

    async def agent_node(state: State):
        """Calls the model on the trimmed conversation."""
        try:
            trimmed = await trimmer.ainvoke(state["messages"])
            prompt = await prompt_template.ainvoke({"messages": trimmed})
            response = await model.ainvoke(prompt)
            return {"messages": [response]}
        except Exception as e:
            logger.error(f"Error in agent_node: {str(e)}")
            raise

    graph_builder = StateGraph(State).add_node("agent", agent_node).add_edge(START, "agent")
    if tools:
        graph_builder = (
            graph_builder
            .add_node("tools", ToolNode(list(tools), handle_tool_errors=True))
            .add_conditional_edges("agent", should_continue, ["tools", END])
            .add_edge("tools", "agent")
        )
    else:
        graph_builder = graph_builder.add_edge("agent", END)
    return graph_builder


class ChatAgent:
    """Compiles the workflow per question and streams its events."""

    def __init__(self, model: Runnable, tools: Sequence[BaseTool] = (), trim_max_messages: int = 10):
        self.tools = list(tools)
        self.workflow = create_workflow(model, self.tools, trim_max_messages)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChatAgent":
        tools = load_tools(settings)
        model = initialise_model(settings, tools)
        logger.info(f"Agent ready: model={settings.model_name} tools={[t.name for t in tools]}")
        return cls(model, tools, settings.trim_max_messages)

    def submit_question(self, messages: Sequence[BaseMessage], chat_id: str) -> AsyncIterator[Dict[str, Any]]:
        """Run the agent on the conversation and return its v2 event stream."""
        cached_messages = add_caching_headers(messages)

        # Each question gets its own checkpointer; the caller always supplies the full history.
        app = self.workflow.compile(checkpointer=MemorySaver())
        config = {"configurable": {"thread_id": chat_id}}
        return app.astream_events({"messages": cached_messages}, config=config, version="v2")


@lru_cache
def get_agent() -> ChatAgent:
    return ChatAgent.from_settings(get_settings())


__all__ = ["ChatAgent", "add_caching_headers", "create_workflow", "get_agent", "should_continue"]
