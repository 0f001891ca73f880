# claimloop/generators/flashcards.py
from __future__ import annotations

import json
import uuid
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from claimloop.core.models.rows import ClaimedRow, TableSpec
from claimloop.core.tasks.base import TaskType


class Flashcard(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    question: str = Field(alias='Question', min_length=1)
    answer: str = Field(alias='Answer', min_length=1)
    uuid: str | None = None


_CARDS = TypeAdapter(list[Flashcard])


class Flashcards(TaskType):
    """
    Active-recall flashcards from a concept explanation, one concept per call.

    Every stored card gets a UUID so later edits and spaced-repetition state
    can refer to it.
    """

    name = 'flashcards'
    env_prefix = 'FLASHCARD'
    default_batch_size = 50
    max_chunk_size = 1

    def __init__(self, cards_per_concept: int = 10, subject: str | None = None):
        self.cards_per_concept = cards_per_concept
        self.subject = subject

    def default_table(self) -> TableSpec:
        return TableSpec(
            table='concepts_vertical',
            id_column='vertical_id',
            payload_columns=['concept_exp'],
            result_column='flash_cards',
            owner_column='flash_card_lock',
            claimed_at_column='flash_card_lock_at',
            filters={'subject_name': self.subject} if self.subject else {},
            required_columns=['concept_exp'],
            json_columns=['flash_cards'],
        )

    def build_prompt(self, rows: Sequence[ClaimedRow]) -> str:
        concept = rows[0].payload.get('concept_exp')
        if not isinstance(concept, str):
            concept = json.dumps(concept, ensure_ascii=False)
        return (
            f'From the concept and explanation below, write {self.cards_per_concept} '
            'unique, high-yield flashcards for active recall.\n'
            'Questions are short and positively phrased; answers are a few words.\n'
            'Output only a JSON array of objects: {"Question": "...", "Answer": "..."}\n\n'
            f'Concept:\n{concept}'
        )

    def validate_item(self, row: ClaimedRow, item: Any) -> dict[str, Any]:
        cards = _CARDS.validate_python(item)
        if not cards:
            raise ValueError('no flashcards in response')
        stored = [
            {
                'Question': card.question,
                'Answer': card.answer,
                'uuid': card.uuid or str(uuid.uuid4()),
            }
            for card in cards
        ]
        return {'flash_cards': stored}
