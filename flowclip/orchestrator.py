"""Task orchestration for clipboard items."""

from __future__ import annotations

import asyncio
import json
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from .catalog import WorkflowCatalog
from .classifier import extract_content_type, generate_fallback_tags
from .config import FlowClipConfig
from .constants import MAX_TAGS
from .errors import NotConfiguredError, NotFoundError, UnsupportedTaskError
from .llm import LLMGateway
from .models import AnalysisTask, ClipboardItem, ComprehensiveAnalysis, TaskStatus, TaskType
from .store import TaskStore
from .utils import extract_keywords, parse_json_with_fallback, word_count

logger = logging.getLogger(__name__)

ANALYSIS_RESULT_NAME = "comprehensive_analysis"

TAGS_PROMPT = """Analyze the following content and generate 3-5 relevant tags that describe the content, its purpose, or context.
Return only the tags as a JSON array of strings, nothing else.

Content: "{content}"
Source App: {source_app}
Window Title: {window_title}

Examples of good tags: ["email", "work", "project-alpha"], ["code", "javascript", "debugging"], ["article", "ai", "technology"]"""

CONTENT_TYPE_PROMPT = """Analyze the following content and determine its type and characteristics.
Return a JSON object with: type, category, language, sentiment, and confidence.

Content: "{content}"
Source App: {source_app}

Possible types: email, code, article, url, phone, address, task, note, quote, data, other
Possible categories: work, personal, research, entertainment, shopping, communication, development
Sentiment: positive, negative, neutral
Confidence: 0.0 to 1.0"""

SUGGEST_PROMPT = """Based on the following clipboard content, suggest 3-5 actionable next steps the user might want to take.
Return a JSON array of objects with: action, description, priority (1-5), and category.

Content: "{content}"
Source App: {source_app}
Window Title: {window_title}

Action categories: research, organize, communicate, create, analyze, remember
Example: {{"action": "Research topic", "description": "Look up more information about this topic", "priority": 3, "category": "research"}}"""


@dataclass(slots=True)
class TaskOutcome:
    task_id: str
    result: Any


class TaskOrchestrator:
    """Dispatches clipboard tasks to workflows or single-call handlers.

    Every invocation leaves exactly one task record behind, completed or
    failed. Summaries and research results are also merged into the item's
    stored analysis; merges for one item never interleave.
    """

    def __init__(self, store: TaskStore, catalog: Optional[WorkflowCatalog] = None) -> None:
        self.store = store
        self.catalog = catalog
        # Entries disappear once no merge holds the lock
        self._merge_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._legacy: Dict[TaskType, Callable[[ClipboardItem], Awaitable[Any]]] = {
            TaskType.FACT_CHECK: self._fact_check,
            TaskType.CREATE_TASK: self._create_task,
            TaskType.TRANSLATE: self._translate,
            TaskType.EXPLAIN: self._explain,
            TaskType.GENERATE_TAGS: self._generate_tags,
            TaskType.DETECT_CONTENT_TYPE: self._detect_content_type,
            TaskType.SUGGEST_ACTIONS: self._suggest_actions,
        }

    @classmethod
    def from_config(cls, config: FlowClipConfig, store: TaskStore) -> "TaskOrchestrator":
        """Build an orchestrator; without credentials every task fails with NotConfiguredError."""

        catalog = WorkflowCatalog.from_config(config) if config.is_configured else None
        return cls(store, catalog)

    @property
    def is_configured(self) -> bool:
        return self.catalog is not None

    @property
    def gateway(self) -> LLMGateway:
        if self.catalog is None:
            raise NotConfiguredError()
        return self.catalog.gateway

    async def trigger_task(self, item_id: str, task_type: TaskType | str) -> TaskOutcome:
        if self.catalog is None:
            raise NotConfiguredError()
        task_type = TaskType(task_type)
        item = await self.store.get_clipboard_item(item_id)
        if item is None:
            raise NotFoundError(f"Clipboard item {item_id} not found")

        task = AnalysisTask.pending(item_id, task_type)
        await self.store.save_task(task)
        logger.info("Running %s task %s for %s", task_type.value, task.id, item_id)
        try:
            if task_type is TaskType.SUMMARIZE:
                result = await self._summarize(item)
            elif task_type is TaskType.RESEARCH:
                result = await self._research(item)
            elif task_type in self._legacy:
                result = await self._legacy[task_type](item)
            else:
                raise UnsupportedTaskError(f"Task type {task_type.value} cannot be triggered directly")
        except Exception as exc:
            logger.exception("%s task %s failed", task_type.value, task.id)
            await self.store.update_task(task.id, status=TaskStatus.FAILED, error=str(exc))
            raise
        await self.store.update_task(
            task.id,
            status=TaskStatus.COMPLETED,
            result=json.dumps(result, ensure_ascii=False, default=str),
        )
        return TaskOutcome(task_id=task.id, result=result)

    async def analyze_clipboard_item(self, item: ClipboardItem) -> ComprehensiveAnalysis:
        """Run the comprehensive analysis workflow and persist its outcome."""

        if self.catalog is None:
            raise NotConfiguredError()
        task = AnalysisTask.pending(item.id, TaskType.COMPREHENSIVE_ANALYSIS)
        try:
            state = await self.catalog.run_analysis(item.content, item.context)
        except Exception as exc:
            logger.exception("Comprehensive analysis failed for %s", item.id)
            task.status = TaskStatus.FAILED
            task.error = str(exc)
            await self.store.save_task(task)
            raise
        result = state.to_result()
        task.status = TaskStatus.COMPLETED
        task.result = json.dumps(result, ensure_ascii=False, default=str)
        await self.store.save_task(task)
        if state.tags:
            await self.store.add_tags(item.id, state.tags)
        try:
            return await self._merge(item.id, ANALYSIS_RESULT_NAME, result)
        except NotFoundError:
            logger.debug("Item %s not persisted; returning unmerged analysis", item.id)
            return state.to_analysis()

    async def _merge(self, item_id: str, workflow_name: str, result: Mapping[str, Any]) -> ComprehensiveAnalysis:
        lock = self._merge_locks.get(item_id)
        if lock is None:
            lock = self._merge_locks[item_id] = asyncio.Lock()
        async with lock:
            return await self.store.merge_workflow_results(item_id, workflow_name, result)

    async def _merge_quietly(self, item_id: str, workflow_name: str, result: Mapping[str, Any]) -> None:
        try:
            await self._merge(item_id, workflow_name, result)
        except Exception:
            logger.exception("Could not merge %s results into analysis of %s", workflow_name, item_id)

    # Workflow-backed tasks

    async def _summarize(self, item: ClipboardItem) -> Dict[str, Any]:
        state = await self.catalog.run_summarization(item.content, item.context)
        await self._merge_quietly(item.id, TaskType.SUMMARIZE.value, state.to_result())
        summary = state.final_summary or state.summary
        words = word_count(item.content)
        return {
            "summary": summary,
            "quality_score": state.quality_score,
            "key_points": list(state.key_points),
            "word_count": words,
            "summary_ratio": round(word_count(summary) / words * 100) if state.final_summary else 0,
        }

    async def _research(self, item: ClipboardItem) -> Dict[str, Any]:
        existing = item.analysis.to_dict() if item.analysis else None
        state = await self.catalog.run_research(item.content, item.context, existing)
        result = state.to_result()
        await self._merge_quietly(item.id, TaskType.RESEARCH.value, result)
        return result

    # Single-call tasks

    async def _ask(self, system: str, user: str) -> str:
        text = await self.gateway.complete([SystemMessage(content=system), HumanMessage(content=user)])
        return text.strip()

    async def _fact_check(self, item: ClipboardItem) -> Dict[str, Any]:
        analysis = await self._ask(
            "You are a fact-checking assistant. Identify claims that can be verified and suggest how to verify them.",
            f"Identify factual claims in this content and suggest how to verify them:\n\n{item.content[:1000]}",
        )
        return {"fact_check_analysis": analysis, "verification_needed": True, "confidence_level": "medium"}

    async def _create_task(self, item: ClipboardItem) -> Dict[str, Any]:
        raw = await self._ask(
            "You are a task management assistant. Create actionable tasks based on content. "
            "Return JSON with title, description, priority, and estimated_time.",
            f"Create actionable tasks based on this content:\n\n{item.content[:800]}",
        )
        return parse_json_with_fallback(
            raw,
            lambda: {
                "title": item.content.strip().splitlines()[0][:60] if item.content.strip() else "Follow up",
                "description": raw or item.content[:200],
                "priority": "medium",
                "estimated_time": "unknown",
            },
            expect=dict,
        )

    async def _translate(self, item: ClipboardItem, target_language: str = "English") -> Dict[str, Any]:
        translated = await self._ask(
            f"You are a translator. Translate the given content to {target_language}.",
            item.content,
        )
        return {
            "translated_text": translated,
            "target_language": target_language,
            "original_length": len(item.content),
            "translated_length": len(translated),
        }

    async def _explain(self, item: ClipboardItem) -> Dict[str, Any]:
        explanation = await self._ask(
            "You are an expert explainer. Break down complex content into simple, understandable explanations.",
            f"Please explain this content in simple terms:\n\n{item.content[:1000]}",
        )
        return {
            "explanation": explanation,
            "complexity_level": "beginner",
            "key_concepts": extract_keywords(item.content),
        }

    async def _generate_tags(self, item: ClipboardItem) -> Dict[str, Any]:
        raw = await self._ask(
            "You are a helpful assistant that generates relevant tags for clipboard content. "
            "Always respond with a valid JSON array of strings.",
            TAGS_PROMPT.format(
                content=item.content[:1000],
                source_app=item.source_app or "Unknown",
                window_title=item.window_title or "Unknown",
            ),
        )
        parsed = parse_json_with_fallback(raw, lambda: generate_fallback_tags(item.content, item.context), expect=list)
        tags: List[str] = list(dict.fromkeys(str(tag).strip().lower() for tag in parsed if str(tag).strip()))
        tags = tags[:MAX_TAGS] or generate_fallback_tags(item.content, item.context)
        await self.store.add_tags(item.id, tags)
        return {"tags": tags}

    async def _detect_content_type(self, item: ClipboardItem) -> Dict[str, Any]:
        raw = await self._ask(
            "You are a content analyzer. Always respond with valid JSON.",
            CONTENT_TYPE_PROMPT.format(content=item.content[:500], source_app=item.source_app or "Unknown"),
        )
        return parse_json_with_fallback(
            raw,
            lambda: {
                "type": extract_content_type(item.content),
                "category": "other",
                "language": "unknown",
                "sentiment": "neutral",
                "confidence": 0.5,
            },
            expect=dict,
        )

    async def _suggest_actions(self, item: ClipboardItem) -> Dict[str, Any]:
        raw = await self._ask(
            "You are a productivity assistant. Suggest helpful actions based on clipboard content. "
            "Always respond with valid JSON.",
            SUGGEST_PROMPT.format(
                content=item.content[:800],
                source_app=item.source_app or "Unknown",
                window_title=item.window_title or "Unknown",
            ),
        )
        suggestions = parse_json_with_fallback(
            raw,
            lambda: [
                {
                    "action": "Research topic",
                    "description": "Look up more information about this topic",
                    "priority": 3,
                    "category": "research",
                }
            ],
            expect=list,
        )
        return {"suggestions": [entry for entry in suggestions if isinstance(entry, dict)]}
