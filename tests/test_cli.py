"""
Tests for the command line interface.
"""

import json

import pytest
from click.testing import CliRunner

from cairn._version import __version__
from cairn.cli import cli, load_chunks


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def chunks_file(tmp_path):
    path = tmp_path / "chunks.jsonl"
    lines = [
        {"id": "cats", "text": "cats are mammals", "source_id": "zoo.md"},
        {"id": "dogs", "text": "dogs are mammals", "source_id": "zoo.md", "chunk_index": 1},
        {"id": "stocks", "text": "the stock market fell", "source_id": "news.md"},
    ]
    path.write_text("\n".join(json.dumps(line) for line in lines) + "\n\n")
    return path


class TestLoadChunks:
    def test_skips_blank_lines(self, chunks_file):
        chunks = load_chunks(chunks_file)

        assert [c.id for c in chunks] == ["cats", "dogs", "stocks"]
        assert chunks[1].chunk_index == 1

    def test_reports_bad_line(self, tmp_path):
        import click

        path = tmp_path / "bad.jsonl"
        path.write_text('{"text": "ok", "source_id": "a"}\n{"text": ""}\n')

        with pytest.raises(click.ClickException, match=":2: invalid chunk"):
            load_chunks(path)


class TestSearchCommand:
    def test_json_output(self, runner, chunks_file):
        result = runner.invoke(
            cli, ["search", str(chunks_file), "mammals", "--strategy", "keyword", "--json"]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["strategy"] == "keyword"
        assert [r["chunk_id"] for r in data["results"]] == ["cats", "dogs"]
        assert data["context"]["text"] == "cats are mammals\n\ndogs are mammals"

    def test_table_output(self, runner, chunks_file):
        result = runner.invoke(
            cli, ["search", str(chunks_file), "mammals", "-k", "1", "--strategy", "keyword"]
        )

        assert result.exit_code == 0, result.output
        assert "1 results" in result.output
        assert "zoo.md#0" in result.output

    def test_empty_query_fails(self, runner, chunks_file):
        result = runner.invoke(cli, ["search", str(chunks_file), "   "])

        assert result.exit_code != 0
        assert "EmptyQueryError" in result.output

    def test_invalid_limit(self, runner, chunks_file):
        result = runner.invoke(cli, ["search", str(chunks_file), "mammals", "--limit", "0"])

        assert result.exit_code != 0

    def test_unknown_strategy_rejected(self, runner, chunks_file):
        result = runner.invoke(cli, ["search", str(chunks_file), "mammals", "--strategy", "fuzzy"])

        assert result.exit_code == 2

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["search", str(tmp_path / "none.jsonl"), "mammals"])

        assert result.exit_code == 2


class TestConfigCommand:
    def test_defaults(self, runner):
        result = runner.invoke(cli, ["config"])

        assert result.exit_code == 0
        assert "# Source: defaults" in result.output
        assert "semantic_weight: 0.7" in result.output

    def test_local_file(self, runner, isolated_environment):
        (isolated_environment / ".cairn").write_text("cache:\n  max_size: 5\n")

        result = runner.invoke(cli, ["config"])

        assert result.exit_code == 0
        assert "max_size: 5" in result.output

    def test_invalid_config(self, runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("cache:\n  max_size: -1\n")

        result = runner.invoke(cli, ["config", "--config", str(path)])

        assert result.exit_code == 1
        assert "cache.max_size" in result.output


def test_version(runner):
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output
