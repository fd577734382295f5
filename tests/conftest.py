from __future__ import annotations

from typing import Any, Callable, List, Sequence, Union

import pytest
from langchain_core.messages import AIMessage, BaseMessage

from flowclip.catalog import WorkflowCatalog
from flowclip.llm import LLMGateway
from flowclip.models import SearchResult
from flowclip.store import SQLiteStore

Reply = Union[str, Exception]


class ScriptedChatModel:
    """Chat model double replaying canned replies in order.

    ``replies`` may also be a callable receiving the messages. Once a list
    is exhausted every further call answers with ``default``.
    """

    def __init__(self, replies: Union[Sequence[Reply], Callable[[List[BaseMessage]], Reply]] = (), *, default: str = "") -> None:
        self._responder = replies if callable(replies) else None
        self._replies = [] if callable(replies) else list(replies)
        self.default = default
        self.calls: List[List[BaseMessage]] = []

    async def ainvoke(self, messages: Sequence[BaseMessage], **_kwargs: Any) -> AIMessage:
        self.calls.append(list(messages))
        if self._responder is not None:
            reply = self._responder(list(messages))
        elif self._replies:
            reply = self._replies.pop(0)
        else:
            reply = self.default
        if isinstance(reply, Exception):
            raise reply
        return AIMessage(content=reply)


class FakeSearch:
    def __init__(self, results: Union[Sequence[SearchResult], Exception] = ()) -> None:
        self.results = results
        self.queries: List[str] = []

    async def search(self, query: str) -> List[SearchResult]:
        self.queries.append(query)
        if isinstance(self.results, Exception):
            raise self.results
        return list(self.results)


def make_catalog(replies: Any = (), *, search: FakeSearch | None = None, vision: ScriptedChatModel | None = None) -> WorkflowCatalog:
    gateway = LLMGateway(ScriptedChatModel(replies), vision)
    return WorkflowCatalog(gateway, search or FakeSearch(), search_delay=0)


@pytest.fixture
def store(tmp_path):
    db = SQLiteStore(tmp_path / "flowclip.db")
    yield db
    db.close()
