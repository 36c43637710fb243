"""
Tests for the command line interface.
"""

from unittest.mock import patch

import pytest

import main as cli
from bedtime.media.storage import FileStorage
from bedtime.pipeline.entities import StoryState
from bedtime.pipeline.service import StoryService


@pytest.fixture
def service(store, backend, vector_index, embedder, tmp_path):
    return StoryService(
        store=store,
        backend=backend,
        index=vector_index,
        embedder=embedder,
        storage=FileStorage(root=tmp_path / "media"),
    )


@pytest.fixture(autouse=True)
def wired(service):
    with patch.object(cli, "setup_logging"), \
         patch.object(cli, "load_dotenv"), \
         patch("bedtime.pipeline.service.StoryService.from_environment", return_value=service):
        yield


class TestParser:

    def test_create_options(self):
        args = cli.build_parser().parse_args(
            ["--model", "ollama:llama3", "create", "a fox", "--parent", "p1", "--public", "--no-wait"]
        )
        assert args.model == "ollama:llama3"
        assert args.command == "create"
        assert args.parent == "p1"
        assert args.public is True
        assert args.no_wait is True

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestCommands:

    def test_create_waits_for_ready(self, store, capsys):
        assert cli.main(["create", "a sleepy dragon"]) == 0

        out = capsys.readouterr().out
        assert "State: ready" in out
        assert "Tale of a sleepy dragon" in out
        assert store.count() == 1

    def test_create_failure_exit_code(self, store, backend):
        backend.story_failures = [True, True, True]

        assert cli.main(["create", "a storm"]) == 1
        assert store.find()[0].state == StoryState.FAILED

    def test_create_no_wait_then_run(self, store, capsys):
        assert cli.main(["create", "a quiet pond", "--no-wait"]) == 0
        story = store.find()[0]
        assert story.state == StoryState.GENERATING_STORY

        assert cli.main(["run", story.id]) == 0
        assert store.get(story.id).state == StoryState.READY

    def test_status_full_prints_json(self, store, story_factory, capsys):
        story = store.create(story_factory(title="The Owl"))

        assert cli.main(["status", story.id, "--full"]) == 0
        assert '"title": "The Owl"' in capsys.readouterr().out

    def test_unknown_story(self, capsys):
        assert cli.main(["status", "missing"]) == 2
        assert "missing" in capsys.readouterr().err

    def test_unknown_parent(self, capsys):
        assert cli.main(["create", "remix", "--parent", "missing"]) == 2

    def test_related_without_text(self, store, story_factory, capsys):
        story = store.create(story_factory(state=StoryState.GENERATING_STORY))

        assert cli.main(["related", story.id]) == 0
        assert "(none)" in capsys.readouterr().out

    def test_reindex(self, store, story_factory, capsys):
        store.create(story_factory(text="Once upon a time."))

        assert cli.main(["reindex"]) == 0
        assert "Indexed 1 stories" in capsys.readouterr().out

    def test_daily_creates_public_daily_story(self, store, capsys):
        assert cli.main(["daily", "--user", "daily-bot"]) == 0

        story = store.find()[0]
        assert story.is_daily_story is True
        assert story.is_public is True
        assert story.user_id == "daily-bot"
        assert "State: ready" in capsys.readouterr().out
