from __future__ import annotations

import io
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from pkoctl.config.envfile import (
    REDACTED,
    SECRET_MARKERS,
    MergePolicy,
    is_secret_key,
    load_env_file,
    mask_secret_assignments,
    merge_into_environ,
    parse_env_line,
    parse_env_text,
    redact,
    redacted_items,
)
from pkoctl.core.console import Console
from pkoctl.errors import ConfigError

_KEYS = st.from_regex(r"[A-Z_][A-Z0-9_]{0,20}", fullmatch=True)
_VALUES = st.from_regex(r"[A-Za-z0-9_./:@-]{0,24}", fullmatch=True)
_BLANKS = st.from_regex(r"[ \t]{1,4}", fullmatch=True)
_COMMENTS = st.from_regex(r"[A-Za-z0-9 ]{0,20}", fullmatch=True)
_SECRET_KEYS = st.tuples(
    st.from_regex(r"[A-Za-z0-9_]{0,8}", fullmatch=True),
    st.sampled_from(SECRET_MARKERS).flatmap(lambda m: st.sampled_from([m, m.lower(), m.title()])),
    st.from_regex(r"[A-Za-z0-9_]{0,8}", fullmatch=True),
).map("".join)


def _console() -> tuple[Console, io.StringIO]:
    err = io.StringIO()
    return Console(color=False, stderr=err, stdout=io.StringIO()), err


def test_inline_comment_after_value_is_dropped() -> None:
    assert parse_env_text("AWS_REGION=us-west-2  # default region\n") == {"AWS_REGION": "us-west-2"}


@given(key=_KEYS, value=_VALUES, lead=_BLANKS, gap=_BLANKS, comment=_COMMENTS)
def test_well_formed_lines_strip_whitespace_and_comments(
    key: str, value: str, lead: str, gap: str, comment: str
) -> None:
    assert parse_env_line(f"{lead}{key}={value}{gap}# {comment}") == (key, value)
    assert parse_env_line(f"{key}={value}{gap}") == (key, value)


@given(st.from_regex(r"[ \t]*(#[^\n]*)?", fullmatch=True))
def test_blank_and_comment_lines_produce_nothing(line: str) -> None:
    assert parse_env_line(line) is None


def test_quotes_keep_hash_and_export_prefix_is_accepted() -> None:
    text = "\n".join(
        [
            "# demo configuration",
            "",
            'PULUMI_STACK="dev # not a comment"',
            "export CLUSTER_NAME='kind-demo'",
            "not a pair",
            "1BAD=value",
            "EMPTY=",
        ]
    )
    assert parse_env_text(text) == {
        "PULUMI_STACK": "dev # not a comment",
        "CLUSTER_NAME": "kind-demo",
        "EMPTY": "",
    }


def test_apostrophe_inside_unquoted_value_does_not_hide_the_comment() -> None:
    assert parse_env_text("NOTE=don't panic  # reminder\n") == {"NOTE": "don't panic"}
    assert parse_env_text("NOTE=it's \"fine\" # tail\n") == {"NOTE": 'it\'s "fine"'}
    assert parse_env_text("NOTE='quoted' # tail\n") == {"NOTE": "quoted"}
    assert parse_env_text("NOTE=#not-a-comment\n") == {"NOTE": "#not-a-comment"}


def test_later_assignment_wins() -> None:
    assert parse_env_text("STACK_NAME=a\nSTACK_NAME=b\n") == {"STACK_NAME": "b"}


@given(key=_SECRET_KEYS, value=st.from_regex(r"[A-Za-z0-9]{1,24}", fullmatch=True))
def test_secret_like_keys_never_render_their_value(key: str, value: str) -> None:
    assert is_secret_key(key)
    assert redact(key, value) == REDACTED
    assert mask_secret_assignments(f"{key}={value}") == f"{key}={REDACTED}"


def test_plain_keys_are_not_redacted() -> None:
    assert redact("AWS_REGION", "us-west-2") == "us-west-2"
    assert redacted_items({"AWS_REGION": "eu-west-1", "PULUMI_ACCESS_TOKEN": "pul-x"}) == {
        "AWS_REGION": "eu-west-1",
        "PULUMI_ACCESS_TOKEN": REDACTED,
    }


def test_mask_secret_assignments_leaves_other_text_alone() -> None:
    text = "helm install --set aws_secret_access_key=abc123 --set region=us-west-2"
    assert mask_secret_assignments(text) == "helm install --set aws_secret_access_key=*** --set region=us-west-2"


def test_load_env_file_logs_redacted_values(tmp_path: Path) -> None:
    env = tmp_path / ".env"
    env.write_text("AWS_SECRET_ACCESS_KEY=hunter2hunter2\nAWS_REGION=eu-central-1\n", encoding="utf-8")
    console, err = _console()
    loaded = load_env_file(env, console)
    assert loaded.exists
    assert loaded.values == {"AWS_SECRET_ACCESS_KEY": "hunter2hunter2", "AWS_REGION": "eu-central-1"}
    log = err.getvalue()
    assert "hunter2hunter2" not in log
    assert "Loaded AWS_SECRET_ACCESS_KEY=***" in log
    assert "Loaded AWS_REGION=eu-central-1" in log


def test_loading_twice_yields_the_same_mapping(tmp_path: Path) -> None:
    env = tmp_path / ".env"
    env.write_text("A=1\nB = ignored\n# c\nC='x y'\n", encoding="utf-8")
    first = load_env_file(env)
    second = load_env_file(env)
    assert dict(first.values) == dict(second.values) == {"A": "1", "C": "x y"}


def test_loaded_mapping_is_read_only(tmp_path: Path) -> None:
    env = tmp_path / ".env"
    env.write_text("A=1\n", encoding="utf-8")
    loaded = load_env_file(env)
    with pytest.raises(TypeError):
        loaded.values["A"] = "2"  # type: ignore[index]


def test_missing_file_warns_and_is_empty(tmp_path: Path) -> None:
    console, err = _console()
    loaded = load_env_file(tmp_path / "absent.env", console)
    assert not loaded.exists
    assert dict(loaded.values) == {}
    assert "[WARNING]" in err.getvalue()
    assert "Using shell environment variables" in err.getvalue()


def test_unreadable_file_is_a_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env = tmp_path / ".env"
    env.write_text("A=1\n", encoding="utf-8")

    def _boom(*_args: object, **_kwargs: object) -> str:
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(Path, "read_text", _boom)
    with pytest.raises(ConfigError, match="cannot read environment file"):
        load_env_file(env)


def test_merge_keep_existing_preserves_exported_values() -> None:
    environ = {"AWS_REGION": "eu-west-1", "STACK_NAME": ""}
    written = merge_into_environ({"AWS_REGION": "us-west-2", "STACK_NAME": "s", "NEW": "1"}, environ)
    assert environ == {"AWS_REGION": "eu-west-1", "STACK_NAME": "s", "NEW": "1"}
    assert written == ["STACK_NAME", "NEW"]


def test_merge_file_wins_overrides_exported_values() -> None:
    environ = {"AWS_REGION": "eu-west-1"}
    merge_into_environ({"AWS_REGION": "us-west-2"}, environ, MergePolicy.FILE_WINS)
    assert environ == {"AWS_REGION": "us-west-2"}
