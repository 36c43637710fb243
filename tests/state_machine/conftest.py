"""
State machine test fixtures.

Base fixtures:
  - Pipeline attached to a temp-file store
  - Update recorder capturing every persisted write in order
"""

import pytest

from bedtime.pipeline.driver import StoryPipeline
from bedtime.pipeline.retry_controller import RetryController


class UpdateRecorder:
    """after_update hook that records (story, changed_fields) per write."""

    def __init__(self):
        self.updates = []

    def __call__(self, story, changed_fields):
        self.updates.append((story, changed_fields))

    def for_story(self, story_id):
        return [(s, c) for s, c in self.updates if s.id == story_id]

    def states(self, story_id):
        return [s.state for s, c in self.for_story(story_id) if "state" in c]


@pytest.fixture
def recorder(store):
    recorder = UpdateRecorder()
    store.register_after_update(recorder)
    return recorder


@pytest.fixture
def make_pipeline(store, mock_clock, recorder):
    """Build and attach a pipeline around a given backend."""

    def _make(backend, max_attempts=3):
        pipeline = StoryPipeline(
            store,
            backend,
            retry_controller=RetryController(max_attempts),
            clock=mock_clock,
        )
        pipeline.attach()
        return pipeline

    return _make
