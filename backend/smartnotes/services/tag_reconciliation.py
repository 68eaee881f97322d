"""
SmartNotes Backend - Tag Reconciliation Engine
===============================================

What:  Merges AI-suggested tag names into the user's tag set and attaches
       them to a note.
How:   For each suggestion:
         1. normalize (trim + lowercase) for comparison; skip blanks
         2. reuse a tag created earlier in this batch, or the user's existing
            tag with the same normalized name, or create an auto-generated one
         3. attach it unless the note already carries that id or name
       Each suggestion runs inside its own SAVEPOINT, so one failing tag is
       recorded as a ReconciliationWarning and the loop moves on.
Who:   NoteProcessor (suggest stage).

Guarantees:
    - additive: never detaches anything
    - idempotent: a second run with the same suggestions creates nothing and
      attaches nothing
    - at most one tag per normalized name per user
"""

import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from smartnotes.exceptions import SmartNotesError
from smartnotes.models.tag import NoteTag, Tag
from smartnotes.schemas.note import SuggestedTag
from smartnotes.services.tag_service import (
    TagRef,
    TagService,
    normalize_name,
    normalize_tag_ref,
    tag_service,
)

logger = logging.getLogger(__name__)

AI_TAG_DESCRIPTION = "AI Suggested"


def random_tag_color() -> str:
    """Random #RRGGBB colour for a newly created tag."""
    return f"#{random.randint(0, 0xFFFFFF):06X}"


@dataclass
class ReconciliationWarning:
    tag_name: str
    reason: str


@dataclass
class ReconciliationResult:
    created_tag_ids: List[uuid.UUID] = field(default_factory=list)
    attached_tag_ids: List[uuid.UUID] = field(default_factory=list)
    warnings: List[ReconciliationWarning] = field(default_factory=list)


class TagReconciler:
    def __init__(self, tags: Optional[TagService] = None):
        self._tags = tags

    @property
    def tags(self) -> TagService:
        return self._tags or tag_service

    async def reconcile(
        self,
        db: AsyncSession,
        user_id: str,
        note_id: uuid.UUID,
        suggested: Sequence[Union[SuggestedTag, str]],
        current_refs: Sequence[TagRef] = (),
    ) -> ReconciliationResult:
        """
        Attach the suggested tags to `note_id`, creating tags as needed.

        `current_refs` are the note's tags as the caller knows them; the
        note's stored associations are merged in so a stale caller cannot
        cause a duplicate attachment.
        """
        result = ReconciliationResult()

        attached_ids: Set[uuid.UUID] = set()
        attached_keys: Set[str] = set()
        for ref in current_refs:
            normalized = normalize_tag_ref(ref)
            if normalized.id is not None:
                attached_ids.add(normalized.id)
            if normalized.key:
                attached_keys.add(normalized.key)
        for tag in await self.tags.tags_for_note(db, note_id):
            attached_ids.add(tag.id)
            attached_keys.add(normalize_name(tag.name))

        resolved: Dict[str, Tag] = {}

        for suggestion in suggested:
            raw_name = suggestion.name if isinstance(suggestion, SuggestedTag) else str(suggestion)
            category = suggestion.category if isinstance(suggestion, SuggestedTag) else None
            display_name = (raw_name or "").strip()
            key = normalize_name(display_name)
            if not key:
                continue

            created = False
            attach = False
            # Why SAVEPOINT per tag: a unique-name race or a failed insert
            # rolls back only this suggestion; tags already applied in the
            # batch stay in the outer transaction.
            try:
                async with db.begin_nested():
                    tag = resolved.get(key)
                    if tag is None:
                        tag = await self.tags.find_by_name(db, user_id, display_name)
                    if tag is None:
                        tag = Tag(
                            user_id=user_id,
                            name=display_name,
                            color=random_tag_color(),
                            description=category or AI_TAG_DESCRIPTION,
                            is_auto_generated=True,
                        )
                        db.add(tag)
                        await db.flush()
                        created = True

                    attach = tag.id not in attached_ids and key not in attached_keys
                    if attach:
                        db.add(NoteTag(note_id=note_id, tag_id=tag.id))
                        await db.flush()
            except (SQLAlchemyError, SmartNotesError) as e:
                reason = getattr(e, "message", None) or str(e) or type(e).__name__
                logger.warning(
                    "Could not reconcile tag '%s' for note %s: %s",
                    display_name,
                    note_id,
                    reason,
                )
                result.warnings.append(ReconciliationWarning(tag_name=display_name, reason=reason))
                continue

            resolved[key] = tag
            if created:
                result.created_tag_ids.append(tag.id)
                logger.info("Auto-generated tag '%s' for user %s", display_name, user_id)
            if attach:
                attached_ids.add(tag.id)
                attached_keys.add(key)
                result.attached_tag_ids.append(tag.id)

        logger.info(
            "Tag reconciliation for note %s: %d created, %d attached, %d warnings",
            note_id,
            len(result.created_tag_ids),
            len(result.attached_tag_ids),
            len(result.warnings),
        )
        return result


tag_reconciler = TagReconciler()
