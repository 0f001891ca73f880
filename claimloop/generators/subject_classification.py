# claimloop/generators/subject_classification.py
"""
Subject classification of exam MCQs.

Chunked: one call classifies many questions and answers with exactly one
subject name per line, in question order. Lines are normalised through a
synonym table; a line that names no known subject leaves its row pending.
"""

from __future__ import annotations

import json
import re
from typing import Any, Sequence

from claimloop.core.models.rows import ClaimedRow, TableSpec
from claimloop.core.tasks.base import ItemRejected, ResponseFormat, TaskType

SUBJECTS: tuple[str, ...] = (
    'Anatomy',
    'Physiology',
    'Biochemistry',
    'Pathology',
    'Pharmacology',
    'Microbiology',
    'Forensic Medicine',
    'Community Medicine',
    'ENT',
    'Ophthalmology',
    'General Medicine',
    'Pediatrics',
    'Dermatology',
    'Psychiatry',
    'General Surgery',
    'Orthopedics',
    'Anesthesia',
    'Radiology',
    'Obstetrics and Gynaecology',
)

SUBJECT_SYNONYMS: dict[str, str] = {
    'immunology': 'Microbiology',
    'genetics': 'Biochemistry',
    'public health': 'Community Medicine',
    'psm': 'Community Medicine',
    'spm': 'Community Medicine',
    'radiodiagnosis': 'Radiology',
    'radiodiagnostics': 'Radiology',
    'internal medicine': 'General Medicine',
    'medicine': 'General Medicine',
    'surgery': 'General Surgery',
    'obg': 'Obstetrics and Gynaecology',
    'ob&g': 'Obstetrics and Gynaecology',
    'obstetrics & gynaecology': 'Obstetrics and Gynaecology',
    'obstetrics and gynecology': 'Obstetrics and Gynaecology',
    'gynecology': 'Obstetrics and Gynaecology',
    'ophthal': 'Ophthalmology',
    'ophthalmic': 'Ophthalmology',
    'eye': 'Ophthalmology',
    'ent': 'ENT',
    'psych': 'Psychiatry',
    'derm': 'Dermatology',
    'peds': 'Pediatrics',
    'ortho': 'Orthopedics',
    'anesthesiology': 'Anesthesia',
    'micro': 'Microbiology',
    'biochem': 'Biochemistry',
    'pharma': 'Pharmacology',
}

_STEM_LIMIT = 600


def normalize_subject(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip().strip('"\'').rstrip('.').strip()
    if text in SUBJECTS:
        return text
    key = text.lower()
    if key in SUBJECT_SYNONYMS:
        return SUBJECT_SYNONYMS[key]
    simplified = re.sub(r'\s+', ' ', re.sub(r'[&.]', '', key)).strip()
    for subject in SUBJECTS:
        if subject.lower() == simplified:
            return subject
    return None


def question_text(payload: dict[str, Any]) -> str:
    """Best available question stem of a row: primary MCQ first, then the MCQ itself."""
    primary = payload.get('primary_mcq')
    if isinstance(primary, dict):
        inner = primary.get('primary_mcq')
        source = inner if isinstance(inner, dict) else primary
        stem = source.get('stem') or primary.get('stem')
        if stem:
            return str(stem)

    mcq = payload.get('mcq')
    match mcq:
        case None:
            return ''
        case str():
            return mcq
        case dict():
            return str(mcq.get('stem') or mcq.get('question') or mcq.get('text') or json.dumps(mcq))
        case _:
            return str(mcq)


def _truncate(text: str, limit: int = _STEM_LIMIT) -> str:
    return text if len(text) <= limit else text[:limit] + ' …'


class SubjectClassification(TaskType):
    name = 'subject_classification'
    env_prefix = 'SUBJECT'
    response_format = ResponseFormat.LINES
    default_chunk_size = 60
    default_batch_size = 180
    default_temperature = 0.0

    def default_table(self) -> TableSpec:
        return TableSpec(
            table='mcq_bank',
            payload_columns=['mcq', 'primary_mcq'],
            result_column='subject',
            owner_column='subject_lock',
            claimed_at_column='subject_locked_at',
        )

    def build_prompt(self, rows: Sequence[ClaimedRow]) -> str:
        subjects = '\n'.join(f'- {s}' for s in SUBJECTS)
        questions = '\n\n'.join(
            f'{i}) {_truncate(question_text(row.payload))}' for i, row in enumerate(rows, 1)
        )
        return (
            'Classify each MBBS exam question into one subject.\n\n'
            f'Use only these exact subject names:\n{subjects}\n\n'
            f'Answer with exactly {len(rows)} lines, one subject per line, in question order. '
            'No numbering, no ids, no other text.\n\n'
            f'Questions:\n\n{questions}\n\n'
            f'Remember: exactly {len(rows)} lines.'
        )

    def validate_item(self, row: ClaimedRow, item: Any) -> dict[str, Any]:
        subject = normalize_subject(item)
        if subject is None:
            raise ItemRejected(f'unknown subject {item!r}')
        return {'subject': subject}
