# claimloop/generators/mcq_set.py
from __future__ import annotations

import json
from typing import Any, Literal, Self, Sequence

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from claimloop.core.models.rows import ClaimedRow, TableSpec
from claimloop.core.tasks.base import TaskType

MCQ_KEYS = ('mcq_1', 'mcq_2', 'mcq_3', 'mcq_4', 'mcq_5', 'mcq_6')

AnswerKey = Literal['A', 'B', 'C', 'D']


class Options(BaseModel):
    A: str = Field(min_length=1)
    B: str = Field(min_length=1)
    C: str = Field(min_length=1)
    D: str = Field(min_length=1)


class Feedback(BaseModel):
    correct: str = Field(min_length=1)
    wrong: str = Field(min_length=1)


class RecursiveMcq(BaseModel):
    model_config = ConfigDict(extra='ignore')

    stem: str = Field(min_length=1)
    mcq_key: Literal['mcq_1', 'mcq_2', 'mcq_3', 'mcq_4', 'mcq_5', 'mcq_6']
    options: Options
    correct_answer: AnswerKey
    feedback: Feedback
    learning_gap: str = Field(min_length=1)


class McqSetOutput(BaseModel):
    items: list[RecursiveMcq] = Field(min_length=6, max_length=6)

    @model_validator(mode='after')
    def keys_are_distinct(self) -> Self:
        keys = sorted(item.mcq_key for item in self.items)
        if tuple(keys) != MCQ_KEYS:
            raise ValueError(f'mcq_key values must be mcq_1..mcq_6 once each, got {keys}')
        return self


_ITEMS = TypeAdapter(list[dict[str, Any]])


class McqSet(TaskType):
    """
    Six progressively deeper MCQs per concept (mcq_1 .. mcq_6), each with an
    A-D answer key, feedback for right and wrong answers and the learning gap
    a wrong answer reveals.
    """

    name = 'mcq_set'
    env_prefix = 'MCQ'
    max_chunk_size = 1
    default_batch_size = 50

    def __init__(self, subject: str | None = None):
        self.subject = subject

    def default_table(self) -> TableSpec:
        return TableSpec(
            table='concepts_vertical',
            id_column='vertical_id',
            payload_columns=['concept_json_unicode'],
            result_column='mcq_1_6_unicode',
            owner_column='mcq_1_6_lock',
            claimed_at_column='mcq_1_6_lock_at',
            filters={'subject_name': self.subject} if self.subject else {},
            required_columns=['concept_json_unicode'],
            json_columns=['mcq_1_6_unicode'],
        )

    def build_prompt(self, rows: Sequence[ClaimedRow]) -> str:
        concept = json.dumps(rows[0].payload.get('concept_json_unicode'), ensure_ascii=False)
        return (
            'Input is a JSON object with a Concept and its Explanation.\n'
            'Write 6 MCQs (mcq_1 to mcq_6) that probe progressively deeper, '
            'each linking the concept back to more basic knowledge.\n\n'
            'Output a strict JSON array of 6 objects with keys: stem, mcq_key, '
            'options {A, B, C, D}, correct_answer (A-D), '
            'feedback {correct, wrong}, learning_gap.\n\n'
            f'Input:\n{concept}'
        )

    def validate_item(self, row: ClaimedRow, item: Any) -> dict[str, Any]:
        output = McqSetOutput(items=_ITEMS.validate_python(item))
        return {'mcq_1_6_unicode': [mcq.model_dump() for mcq in output.items]}
