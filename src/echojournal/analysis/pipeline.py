"""Post-conversation analysis: tags/headline, emotions, summary.

Each stage runs at most once per pipeline instance. The tag and emotion
stages count as processed even when the generation call fails, so a
broken upstream is not hit again; the summary stage only counts as
processed on success and is retried by the next explicit :meth:`run`.
A fresh instance re-runs every stage, overwriting its own output fields.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import UUID

from echojournal.errors import EchoJournalError, PipelineReport
from echojournal.journal.models import (
    FEELING_TAXONOMY,
    FeelingCategory,
    match_feeling,
    normalize_tags,
)
from echojournal.journal.store import JournalStore

if TYPE_CHECKING:
    from echojournal.conversation.collaborators import GenerationService

logger = logging.getLogger(__name__)


class Stage(StrEnum):
    """Analysis stages, in execution order."""

    TAGS = "tags"
    EMOTIONS = "emotions"
    SUMMARY = "summary"


class AnalysisPipeline:
    """Derive tags, headline, feelings and summary from a conversation."""

    def __init__(
        self,
        store: JournalStore,
        generation: GenerationService,
        *,
        max_tags: int = 3,
    ) -> None:
        self._store = store
        self._generation = generation
        self._max_tags = max_tags
        self._processed: set[Stage] = set()

    def is_processed(self, stage: Stage) -> bool:
        return stage in self._processed

    def conversation_text(self, entry_id: UUID) -> str:
        """All message text in timestamp order, blank-line separated."""
        texts = [m.text.strip() for m in self._store.messages_for(entry_id)]
        return "\n\n".join(t for t in texts if t)

    async def run(self, entry_id: UUID) -> PipelineReport:
        """Run every stage that has not yet been processed.

        Never raises for stage failures; they are logged and recorded on
        the returned report.
        """
        report = PipelineReport()
        text = self.conversation_text(entry_id)

        await self._extract_tags(entry_id, text, report)
        await self._classify_emotions(entry_id, text, report)
        await self._summarize(entry_id, text, report)

        if report.errors:
            logger.warning(
                "Analysis for entry %s finished with %d error(s)", entry_id, len(report.errors)
            )
        else:
            logger.info("Analysis for entry %s complete", entry_id)
        return report

    async def _extract_tags(self, entry_id: UUID, text: str, report: PipelineReport) -> None:
        if Stage.TAGS in self._processed:
            report.mark_skipped(Stage.TAGS)
            return
        try:
            tags: list[str] = []
            headline: str | None = None
            if text:
                tags = normalize_tags(
                    await self._generation.extract_tags(text, self._max_tags),
                    limit=self._max_tags,
                )
                if tags:
                    headline = await self._generation.generate_headline(tags)
                    headline = headline.strip() if headline else None
            self._store.update_entry_tags(entry_id, tags, headline or None)
            report.mark_completed(Stage.TAGS)
        except EchoJournalError as exc:
            logger.warning("Tag extraction failed for %s: %s", entry_id, exc, exc_info=True)
            report.add_error(
                Stage.TAGS, str(exc), source="generation", error_type=type(exc).__name__
            )
        except Exception as exc:
            logger.exception("Unexpected error in tag extraction for %s", entry_id)
            report.add_error(
                Stage.TAGS, str(exc), source="generation", error_type=type(exc).__name__
            )
        finally:
            self._processed.add(Stage.TAGS)

    async def _classify_emotions(
        self, entry_id: UUID, text: str, report: PipelineReport
    ) -> None:
        if Stage.EMOTIONS in self._processed:
            report.mark_skipped(Stage.EMOTIONS)
            return
        try:
            feelings: list[tuple[str, FeelingCategory]] = []
            if text:
                raw = await self._generation.classify_emotions(text, FEELING_TAXONOMY)
                for name, category in raw:
                    matched = match_feeling(name, category)
                    if matched is None:
                        logger.debug("Discarding feeling outside taxonomy: %s/%s", name, category)
                        continue
                    if matched not in feelings:
                        feelings.append(matched)
            self._store.replace_feelings(entry_id, feelings)
            report.mark_completed(Stage.EMOTIONS)
        except EchoJournalError as exc:
            logger.warning("Emotion classification failed for %s: %s", entry_id, exc, exc_info=True)
            report.add_error(
                Stage.EMOTIONS, str(exc), source="generation", error_type=type(exc).__name__
            )
        except Exception as exc:
            logger.exception("Unexpected error in emotion classification for %s", entry_id)
            report.add_error(
                Stage.EMOTIONS, str(exc), source="generation", error_type=type(exc).__name__
            )
        finally:
            self._processed.add(Stage.EMOTIONS)

    async def _summarize(self, entry_id: UUID, text: str, report: PipelineReport) -> None:
        if Stage.SUMMARY in self._processed:
            report.mark_skipped(Stage.SUMMARY)
            return
        if not text:
            self._processed.add(Stage.SUMMARY)
            report.mark_completed(Stage.SUMMARY)
            return
        try:
            summary = (await self._generation.summarize(text)).strip()
            if summary:
                self._store.update_entry_summary(entry_id, summary)
        except EchoJournalError as exc:
            logger.warning("Summary generation failed for %s: %s", entry_id, exc, exc_info=True)
            report.add_error(
                Stage.SUMMARY, str(exc), source="generation", error_type=type(exc).__name__
            )
            return
        except Exception as exc:
            logger.exception("Unexpected error in summary generation for %s", entry_id)
            report.add_error(
                Stage.SUMMARY, str(exc), source="generation", error_type=type(exc).__name__
            )
            return
        self._processed.add(Stage.SUMMARY)
        report.mark_completed(Stage.SUMMARY)
