from claimloop.core.tasks.registry import TaskRegistry
from claimloop.generators.flashcards import Flashcards
from claimloop.generators.image_mcq import ImageKeywordMcq
from claimloop.generators.mcq_set import McqSet
from claimloop.generators.subject_classification import SubjectClassification


def default_registry() -> TaskRegistry:
    """Registry holding every built-in task type."""
    registry = TaskRegistry()
    for task in (SubjectClassification(), Flashcards(), McqSet(), ImageKeywordMcq()):
        registry.register(task)
    return registry


__all__ = [
    'Flashcards',
    'ImageKeywordMcq',
    'McqSet',
    'SubjectClassification',
    'default_registry',
]
