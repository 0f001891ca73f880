# claimloop/generators/image_mcq.py
from __future__ import annotations

from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from claimloop.core.models.rows import ClaimedRow, TableSpec
from claimloop.core.tasks.base import TaskType
from claimloop.generators.mcq_set import AnswerKey, Options


class ImageMcq(BaseModel):
    model_config = ConfigDict(extra='ignore')

    stem: str = Field(min_length=1)
    options: Options
    feedback: str = Field(min_length=1)
    correct_answer: AnswerKey

    @field_validator('correct_answer', mode='before')
    @classmethod
    def normalize_answer(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().strip('().').upper()
        return v


class ImageKeywordMcq(TaskType):
    """
    One clinical-vignette MCQ per image keyword, in JSON-object output mode.

    With `image_url_column` set, that column is claimed as well and its URL is
    sent to the model next to the keyword, so the question can be written
    against the actual image.
    """

    name = 'image_mcq'
    env_prefix = 'IMAGE_MCQ'
    json_mode = True
    max_chunk_size = 1

    def __init__(self, image_url_column: str | None = None):
        self.image_url_column = image_url_column

    def default_table(self) -> TableSpec:
        payload = ['image']
        if self.image_url_column:
            payload.append(self.image_url_column)
        return TableSpec(
            table='images_flatten',
            payload_columns=payload,
            result_column='image_mcq',
            owner_column='two_images_lock',
            claimed_at_column='two_images_lock_at',
            required_columns=list(payload),
            json_columns=['image_mcq'],
        )

    def build_prompt(self, rows: Sequence[ClaimedRow]) -> str:
        keyword = rows[0].payload.get('image')
        return (
            'Using the image keyword below, write ONE moderate-to-hard clinical '
            'vignette MCQ whose answer depends on interpreting the image. '
            'Refer to it only as "Based on the given image" and do not describe its findings.\n\n'
            'Output only a JSON object:\n'
            '{"stem": "", "options": {"A": "", "B": "", "C": "", "D": ""}, '
            '"feedback": "", "correct_answer": ""}\n\n'
            f'Image keyword:\n{keyword}'
        )

    def images(self, rows: Sequence[ClaimedRow]) -> tuple[str, ...]:
        if not self.image_url_column:
            return ()
        urls = (row.payload.get(self.image_url_column) for row in rows)
        return tuple(url for url in urls if isinstance(url, str) and url.strip())

    def validate_item(self, row: ClaimedRow, item: Any) -> dict[str, Any]:
        mcq = ImageMcq.model_validate(item)
        return {'image_mcq': mcq.model_dump()}
