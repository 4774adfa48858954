from __future__ import annotations

import datetime as dt

import pytest

from panelbase.core.extensions.codec import (
    CommandCodec,
    PluginCodec,
    ThemeCodec,
    dump_structure,
    load_yaml_document,
    parse_structure,
)
from panelbase.core.extensions.exceptions import ParseError
from panelbase.core.extensions.models import Directory, Leaf, count_files, iter_leaves

SUM = "a" * 64


def test_parse_structure_distinguishes_leaves_and_directories() -> None:
    tree = parse_structure({
        "index.css": {"url": "index.css", "sum": SUM},
        "plain.js": "https://example.com/plain.js",
        "img": {"logo.svg": {"url": "img/logo.svg", "sum": SUM}},
        # a directory whose only entry is named "url" and is itself a directory
        "weird": {"url": {"a.txt": "a.txt"}},
    })

    assert tree.children["index.css"] == Leaf(url="index.css", sum=SUM)
    assert tree.children["plain.js"] == Leaf(url="https://example.com/plain.js")
    assert isinstance(tree.children["img"], Directory)
    assert isinstance(tree.children["weird"], Directory)
    assert isinstance(tree.children["weird"].children["url"], Directory)
    assert count_files(tree) == 4


def test_parse_structure_rejects_leaf_with_extra_keys() -> None:
    with pytest.raises(ParseError, match="structure/a.css"):
        parse_structure({"a.css": {"url": "a.css", "sum": SUM, "size": 3}})


def test_parse_structure_rejects_non_string_sum() -> None:
    with pytest.raises(ParseError, match="'sum' must be a string"):
        parse_structure({"a.css": {"url": "a.css", "sum": 1234}})


def test_parse_structure_rejects_scalars() -> None:
    with pytest.raises(ParseError, match="structure/css/a.css"):
        parse_structure({"css": {"a.css": 42}})


def test_iter_leaves_is_sorted_depth_first() -> None:
    tree = parse_structure({"b.txt": "b", "a": {"z.txt": "z", "c.txt": "c"}})
    assert [parts for parts, _ in iter_leaves(tree)] == [("a", "c.txt"), ("a", "z.txt"), ("b.txt",)]


def test_load_yaml_document_requires_mapping() -> None:
    with pytest.raises(ParseError):
        load_yaml_document(b"- just\n- a list\n")
    with pytest.raises(ParseError):
        load_yaml_document(b"name: [unclosed\n")


def test_theme_codec_accepts_author_strings_and_mappings() -> None:
    manifest = ThemeCodec().parse(
        b"name: Dark\n"
        b"authors:\n"
        b"  - Ada\n"
        b"  - {name: Grace, email: grace@example.com}\n"
        b"version: 1.0.0\n"
        b"description: d\n"
        b"source_link: https://example.com/theme.yaml\n"
        b"structure:\n"
        b"  a.css: {url: a.css, sum: " + SUM.encode() + b"}\n"
    )

    assert manifest.author_names == ["Ada", "Grace"]
    assert manifest.authors[1].email == "grace@example.com"
    assert manifest.installed_at is None


def test_theme_codec_normalizes_yaml_timestamps() -> None:
    data = ThemeCodec.from_dict({
        "name": "Dark",
        "authors": ["Ada"],
        "version": "1",
        "description": "d",
        "source_link": "https://example.com/theme.yaml",
        "installed_at": dt.datetime(2024, 5, 1, 10, 0, 0, tzinfo=dt.timezone.utc),
    })
    assert data.installed_at == "2024-05-01T10:00:00Z"


def test_theme_json_round_trip_keeps_timestamps() -> None:
    codec = ThemeCodec()
    manifest = codec.parse(
        b"name: Dark\nauthors: [Ada]\nversion: '1.0'\ndescription: d\n"
        b"source_link: https://example.com/theme.yaml\n"
        b"structure: {a.css: {url: 'https://example.com/a.css', sum: " + SUM.encode() + b"}}\n"
    )
    manifest.installed_at = "2024-05-01T10:00:00Z"
    manifest.last_updated_at = "2024-06-01T10:00:00Z"

    restored = codec.parse_json(codec.dump_json(manifest).encode("utf-8"))

    assert restored == manifest


def test_plugin_codec_reads_endpoints_and_dependencies() -> None:
    manifest = PluginCodec().parse(
        b"name: Hello\nauthors: [Ada]\nversion: 1.0.0\ndescription: d\n"
        b"source_link: https://example.com/plugin.yaml\napi_version: v1\n"
        b"structure: {main.py: main.py}\n"
        b"dependencies: {github.com/x/y: v1.0.0}\n"
        b"endpoints:\n"
        b"  /hello:\n"
        b"    methods: [GET]\n"
        b"    input: {name: string}\n"
    )

    assert manifest.api_version == "v1"
    assert manifest.dependencies == {"github.com/x/y": "v1.0.0"}
    assert manifest.endpoints["/hello"].methods == ["GET"]
    assert manifest.endpoints["/hello"].input == {"name": "string"}

    dumped = PluginCodec.to_dict(manifest)
    assert dumped["structure"] == {"main.py": "main.py"}
    assert dumped["authors"] == ["Ada"]


def test_plugin_codec_rejects_malformed_endpoints() -> None:
    with pytest.raises(ParseError):
        PluginCodec.from_dict({"endpoints": ["/hello"]})
    with pytest.raises(ParseError):
        PluginCodec.from_dict({"endpoints": {"/hello": {"methods": "GET"}}})


def test_dump_structure_plain_leaves_only_without_checksum() -> None:
    tree = Directory(children={"a": Leaf("u1"), "b": Leaf("u2", SUM)})
    assert dump_structure(tree, plain_leaves=True) == {"a": "u1", "b": {"url": "u2", "sum": SUM}}
    assert dump_structure(tree) == {"a": {"url": "u1"}, "b": {"url": "u2", "sum": SUM}}


def test_command_codec_reads_header() -> None:
    manifest = CommandCodec().parse(
        b"#!/bin/bash\n"
        b"# @@command: backup\n"
        b"# @@pkg_managers: apt,  yum ,\n"
        b"# @@version: 0.3\n"
        b"# @@description: Backs things up: nightly\n"
        b"# @@source_link: https://example.com/backup.sh\n"
        b"# @@unknown: ignored\n"
    )

    assert manifest.command == "backup"
    assert manifest.name == "backup"
    assert manifest.filename == "backup.sh"
    assert manifest.pkg_managers == ["apt", "yum"]
    assert manifest.description == "Backs things up: nightly"
    assert manifest.authors == []


def test_command_codec_rejects_binary() -> None:
    with pytest.raises(ParseError):
        CommandCodec().parse(b"\xff\xfe\x00")


def test_unquoted_numeric_scalars_keep_their_text() -> None:
    manifest = ThemeCodec().parse(
        b"name: 2024\nauthors: [Ada]\nversion: 1.10\ndescription: 007\n"
        b"source_link: https://example.com/theme.yaml\n"
        b"structure: {a.css: {url: a.css, sum: " + SUM.encode() + b"}}\n"
    )

    assert manifest.version == "1.10"
    assert manifest.name == "2024"
    assert manifest.description == "007"

    assert load_yaml_document(b"installed_at: 2024-05-01T10:00:00Z\n")["installed_at"] == dt.datetime(
        2024, 5, 1, 10, 0, 0, tzinfo=dt.timezone.utc
    )
