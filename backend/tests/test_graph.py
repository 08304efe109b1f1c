import asyncio
from typing import Any, List

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from langchain_core.tools import tool
from langgraph.graph import END
from pydantic import Field

from chat_agent.graph import ChatAgent, add_caching_headers, create_trimmer, should_continue
from chat_agent.system_message import SYSTEM_MESSAGE
from chat_agent.tools import ToolError


class ScriptedChatModel(BaseChatModel):
    """Returns the queued responses in order and remembers every prompt."""

    responses: List[BaseMessage]
    prompts: List[Any] = Field(default_factory=list)

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        self.prompts.append(list(messages))
        return ChatResult(generations=[ChatGeneration(message=self.responses.pop(0))])

    @property
    def _llm_type(self) -> str:
        return "scripted"


@tool
def echo(text: str) -> str:
    """Echo the text back."""
    return f"echo: {text}"


@tool
def broken_lookup(q: str) -> str:
    """Look something up; the backend always fails."""
    raise ToolError("GraphQL error: bad query")


def test_add_caching_headers_marks_last_and_second_human():
    messages = [
        HumanMessage(content="q1"),
        AIMessage(content="a1"),
        HumanMessage(content="q2"),
        AIMessage(content="a2"),
        HumanMessage(content="q3"),
    ]

    cached = add_caching_headers(messages)

    assert cached[-1].content == [{"type": "text", "text": "q3", "cache_control": {"type": "ephemeral"}}]
    assert cached[2].content == [{"type": "text", "text": "q2", "cache_control": {"type": "ephemeral"}}]
    assert cached[0].content == "q1"
    assert cached[1].content == "a1"
    # Originals untouched.
    assert messages[-1].content == "q3"
    assert messages[2].content == "q2"


def test_add_caching_headers_edge_cases():
    assert add_caching_headers([]) == []

    only = add_caching_headers([HumanMessage(content="solo")])
    assert only[0].content[0]["cache_control"] == {"type": "ephemeral"}

    blocks = add_caching_headers([HumanMessage(content=[{"type": "text", "text": "a"}, {"type": "text", "text": "b"}])])
    assert "cache_control" not in blocks[0].content[0]
    assert blocks[0].content[1]["cache_control"] == {"type": "ephemeral"}


def test_should_continue():
    with_tools = AIMessage(content="", tool_calls=[{"name": "echo", "args": {"text": "x"}, "id": "call_1"}])
    assert should_continue({"messages": [with_tools]}) == "tools"
    assert should_continue({"messages": [AIMessage(content="final")]}) == END


def test_trimmer_keeps_recent_messages_starting_on_human():
    messages = []
    for i in range(8):
        messages.append(HumanMessage(content=f"q{i}"))
        messages.append(AIMessage(content=f"a{i}"))
    messages.append(HumanMessage(content="latest"))

    trimmed = create_trimmer(10).invoke(messages)

    assert len(trimmed) <= 10
    assert isinstance(trimmed[0], HumanMessage)
    assert trimmed[-1].content == "latest"


def _run(agent, messages, chat_id="chat_1"):
    async def collect():
        return [event async for event in agent.submit_question(messages, chat_id)]

    return asyncio.run(collect())


def test_agent_runs_tool_loop():
    model = ScriptedChatModel(
        responses=[
            AIMessage(content="", tool_calls=[{"name": "echo", "args": {"text": "hi"}, "id": "call_1"}]),
            AIMessage(content="The tool said hi."),
        ]
    )
    agent = ChatAgent(model, [echo])

    events = _run(agent, [HumanMessage(content="say hi")])

    tool_starts = [e for e in events if e["event"] == "on_tool_start"]
    tool_ends = [e for e in events if e["event"] == "on_tool_end"]
    assert [e["name"] for e in tool_starts] == ["echo"]
    assert "hi" in str(tool_starts[0]["data"]["input"])
    assert "echo: hi" in str(tool_ends[0]["data"]["output"])

    assert len(model.prompts) == 2
    first_prompt, second_prompt = model.prompts
    assert isinstance(first_prompt[0], SystemMessage)
    assert first_prompt[0].content == SYSTEM_MESSAGE
    assert isinstance(second_prompt[-1], ToolMessage)


def test_agent_without_tools_answers_once():
    model = ScriptedChatModel(responses=[AIMessage(content="Hello there")])
    agent = ChatAgent(model)

    events = _run(agent, [HumanMessage(content="hi")])

    assert not any(e["event"] == "on_tool_start" for e in events)
    assert len(model.prompts) == 1
    # The prompt carries the cache-marked question.
    assert model.prompts[0][-1].content[0]["text"] == "hi"


def test_agent_reports_tool_failure_to_model():
    model = ScriptedChatModel(
        responses=[
            AIMessage(content="", tool_calls=[{"name": "broken_lookup", "args": {"q": "x"}, "id": "call_1"}]),
            AIMessage(content="Sorry, the lookup failed."),
        ]
    )
    agent = ChatAgent(model, [broken_lookup])

    _run(agent, [HumanMessage(content="look up x")])

    assert len(model.prompts) == 2
    tool_message = model.prompts[1][-1]
    assert isinstance(tool_message, ToolMessage)
    assert tool_message.tool_call_id == "call_1"
    assert "bad query" in str(tool_message.content)
