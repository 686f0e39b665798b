"""Tests for discovery backends and the fan-in."""

import asyncio
import json
import os
import time
from datetime import timedelta
from typing import List

import pytest
import respx
from httpx import Response

from o11y_deploy.core.errors import ConfigurationError, DiscoveryError, RegistrationError
from o11y_deploy.discovery import (
    FileSDConfig,
    HTTPSDConfig,
    StaticConfig,
    TargetGroup,
    default_discovery_registry,
    discover_label_sets,
    populate_targets,
)
from o11y_deploy.discovery.base import Discoverer, DiscoveryConfig
from o11y_deploy.discovery.file_sd import FILE_PATH_LABEL, read_file
from o11y_deploy.discovery.http_sd import URL_LABEL
from o11y_deploy.discovery.registry import build_discovery_registry
from o11y_deploy.labels import ADDRESS_LABEL


class ScriptedDiscoverer(Discoverer):
    def __init__(self, source, config):
        super().__init__(source)
        self.config = config

    async def run(self, queue):
        for batch in self.config.batches:
            await asyncio.sleep(self.config.delay)
            group = TargetGroup(
                source=self.source,
                targets=[{ADDRESS_LABEL: t} for t in batch],
                labels=dict(self.config.labels),
            )
            await self.send(queue, [group])
        if self.config.fail:
            raise RuntimeError("backend crashed")
        if self.config.hang:
            await asyncio.Event().wait()


class ScriptedConfig(DiscoveryConfig):
    key = "scripted_configs"

    batches: List[List[str]] = []
    labels: dict = {}
    delay: float = 0.0
    hang: bool = False
    fail: bool = False

    def new_discoverer(self, source):
        return ScriptedDiscoverer(source, self)


class BrokenConfig(DiscoveryConfig):
    key = "broken_configs"

    def new_discoverer(self, source):
        raise OSError("no such socket")


def addresses(label_sets):
    return [ls.address for ls in label_sets]


@pytest.mark.asyncio
class TestFanIn:
    """Tests for populate_targets()."""

    async def test_deadline_with_silent_backend(self):
        """A backend that never reports does not hold the fan-in past its deadline."""
        configs = [
            ScriptedConfig(batches=[["10.0.0.1:22"]], hang=True),
            ScriptedConfig(batches=[["10.0.0.2:22"]], delay=0.05, hang=True),
            ScriptedConfig(batches=[], hang=True),
        ]

        started = time.monotonic()
        result = await populate_targets(configs, timedelta(seconds=0.3))
        elapsed = time.monotonic() - started

        assert addresses(result) == ["10.0.0.1:22", "10.0.0.2:22"]
        assert 0.25 <= elapsed < 1.5

    async def test_last_batch_per_source_wins(self):
        configs = [ScriptedConfig(batches=[["old:1", "older:1"], ["new:1"]], hang=True)]

        result = await populate_targets(configs, timedelta(seconds=0.2))

        assert addresses(result) == ["new:1"]

    async def test_union_is_deduplicated(self):
        configs = [
            ScriptedConfig(batches=[["a:1", "b:1"]]),
            ScriptedConfig(batches=[["b:1", "c:1"]]),
        ]

        result = await populate_targets(configs, timedelta(seconds=1))

        assert addresses(result) == ["a:1", "b:1", "c:1"]

    async def test_same_address_different_labels_kept(self):
        configs = [
            ScriptedConfig(batches=[["a:1"]], labels={"env": "prod"}),
            ScriptedConfig(batches=[["a:1"]], labels={"env": "dev"}),
        ]

        result = await populate_targets(configs, timedelta(seconds=1))

        assert len(result) == 2

    async def test_returns_early_when_all_backends_finished(self):
        configs = [StaticConfig(targets=["10.0.0.1:22"])]

        started = time.monotonic()
        result = await populate_targets(configs, "30s")

        assert addresses(result) == ["10.0.0.1:22"]
        assert time.monotonic() - started < 5

    async def test_crashed_backend_keeps_other_results(self):
        configs = [
            ScriptedConfig(batches=[["a:1"]], fail=True),
            ScriptedConfig(batches=[["b:1"]]),
        ]

        result = await populate_targets(configs, timedelta(seconds=1))

        assert addresses(result) == ["a:1", "b:1"]

    async def test_backend_creation_failure(self):
        with pytest.raises(DiscoveryError, match="could not create new discoverer"):
            await populate_targets(
                [ScriptedConfig(batches=[["a:1"]]), BrokenConfig()], timedelta(seconds=1)
            )

    async def test_no_sources(self):
        with pytest.raises(DiscoveryError, match="no discovery sources"):
            await populate_targets([], timedelta(seconds=1))

    async def test_host_labels_win_over_group_labels(self):
        configs = [StaticConfig(targets=["a:1"], labels={"env": "prod", ADDRESS_LABEL: "x:1"})]

        result = await populate_targets(configs, timedelta(seconds=1))

        assert result[0].to_dict() == {ADDRESS_LABEL: "a:1", "env": "prod"}


class TestDiscoverLabelSets:
    """Tests for the blocking wrapper."""

    def test_runs_event_loop(self):
        result = discover_label_sets([StaticConfig(targets=["h:1", "h:2"])], timedelta(seconds=1))
        assert addresses(result) == ["h:1", "h:2"]

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs named pipes")
    def test_blocked_file_read_does_not_hold_deadline(self, tmp_path):
        fifo = tmp_path / "hang.yml"
        os.mkfifo(fifo)
        configs = [
            FileSDConfig(files=[str(tmp_path / "*.yml")]),
            StaticConfig(targets=["10.0.0.1:9100"]),
        ]

        try:
            started = time.monotonic()
            result = discover_label_sets(configs, timedelta(seconds=0.3))
            elapsed = time.monotonic() - started
        finally:
            # release the reader still blocked in open()
            try:
                os.close(os.open(fifo, os.O_WRONLY | os.O_NONBLOCK))
            except OSError:
                pass

        assert elapsed < 2.0
        assert addresses(result) == ["10.0.0.1:9100"]


class TestTargetGroup:
    """Tests for decoding the SD target group shape."""

    def test_from_dict(self):
        group = TargetGroup.from_dict({"targets": ["a:1"], "labels": {"env": "prod"}}, source="s")
        assert group.targets == [{ADDRESS_LABEL: "a:1"}]
        assert group.labels == {"env": "prod"}

    @pytest.mark.parametrize("target", [None, "", 9100, ["a:1"]])
    def test_rejects_invalid_target(self, target):
        with pytest.raises(ValueError, match="invalid target"):
            TargetGroup.from_dict({"targets": ["a:1", target]}, source="s")

    def test_null_label_value_is_unset(self):
        group = TargetGroup.from_dict({"targets": ["a:1"], "labels": {"env": None}}, source="s")

        label_set = group.label_sets()[0]

        assert "env" not in label_set
        assert label_set.to_dict() == {ADDRESS_LABEL: "a:1"}

    def test_null_label_value_does_not_override_host_label(self):
        group = TargetGroup(
            source="s", targets=[{ADDRESS_LABEL: "a:1", "env": "prod"}], labels={"env": ""}
        )
        assert group.label_sets()[0]["env"] == "prod"


class TestFileSD:
    """Tests for file based discovery."""

    def test_read_yaml(self, tmp_path):
        path = tmp_path / "targets.yml"
        path.write_text("- targets: ['10.0.0.1:9100']\n  labels:\n    env: prod\n")

        groups = read_file(str(path))

        assert groups[0].targets == [{ADDRESS_LABEL: "10.0.0.1:9100"}]
        assert groups[0].labels == {"env": "prod", FILE_PATH_LABEL: str(path)}
        assert groups[0].source == f"{path}:0"

    def test_read_json(self, tmp_path):
        path = tmp_path / "targets.json"
        path.write_text(json.dumps([{"targets": ["a:1", "b:1"]}]))

        assert len(read_file(str(path))[0].targets) == 2

    def test_read_empty_file(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert read_file(str(path)) == []

    def test_read_invalid_shape(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("targets: [a]\n")
        with pytest.raises(ValueError):
            read_file(str(path))

    def test_read_null_target(self, tmp_path):
        path = tmp_path / "null.yml"
        path.write_text("- targets: ['a:1', null]\n  labels:\n    env:\n")
        with pytest.raises(ValueError, match="invalid target None"):
            read_file(str(path))

    def test_refresh_skips_file_with_null_target(self, tmp_path):
        (tmp_path / "good.yml").write_text("- targets: ['a:1']\n  labels:\n    env:\n")
        (tmp_path / "null.yml").write_text("- targets: [null]\n")
        config = FileSDConfig(files=[str(tmp_path / "*.yml")])

        groups = config.new_discoverer("file_sd_configs/0").refresh()

        assert len(groups) == 1
        assert groups[0].label_sets()[0].public() == {}

    def test_refresh_skips_unreadable_files(self, tmp_path):
        (tmp_path / "good.yml").write_text("- targets: ['a:1']\n")
        (tmp_path / "bad.yml").write_text("{not: [valid\n")
        config = FileSDConfig(files=[str(tmp_path / "*.yml")])

        groups = config.new_discoverer("file_sd_configs/0").refresh()

        assert [g.targets for g in groups] == [[{ADDRESS_LABEL: "a:1"}]]

    def test_resolve_paths(self, tmp_path):
        config = FileSDConfig(files=["targets/*.yml", "/abs/x.yml"])
        resolved = config.resolve_paths(tmp_path)
        assert resolved.files == [str(tmp_path / "targets/*.yml"), "/abs/x.yml"]
        assert config.files[0] == "targets/*.yml"

    def test_requires_files(self):
        with pytest.raises(ValueError):
            FileSDConfig(files=[])

    def test_invalid_refresh_interval(self):
        with pytest.raises(ValueError):
            FileSDConfig(files=["x"], refresh_interval="soon")

    @pytest.mark.asyncio
    async def test_fan_in(self, tmp_path):
        (tmp_path / "a.yml").write_text("- targets: ['a:1']\n  labels: {team: core}\n")
        config = FileSDConfig(files=[str(tmp_path / "*.yml")])

        result = await populate_targets([config], timedelta(seconds=0.3))

        assert addresses(result) == ["a:1"]
        assert result[0]["team"] == "core"


@pytest.mark.asyncio
class TestHTTPSD:
    """Tests for HTTP based discovery."""

    @respx.mock
    async def test_poll(self):
        respx.get("http://sd.example/targets").mock(
            return_value=Response(
                200, json=[{"targets": ["10.0.0.1:9100"], "labels": {"dc": "eu"}}]
            )
        )
        config = HTTPSDConfig(url="http://sd.example/targets")

        result = await populate_targets([config], timedelta(seconds=0.3))

        assert addresses(result) == ["10.0.0.1:9100"]
        assert result[0]["dc"] == "eu"
        assert result[0][URL_LABEL] == "http://sd.example/targets"
        assert respx.calls.last.request.headers["Accept"] == "application/json"

    @respx.mock
    async def test_failed_poll_leaves_source_absent(self):
        respx.get("http://sd.example/targets").mock(return_value=Response(500))
        config = HTTPSDConfig(url="http://sd.example/targets")

        result = await populate_targets([config], timedelta(seconds=0.2))

        assert result == []

    @respx.mock
    async def test_non_list_body_leaves_source_absent(self):
        respx.get("http://sd.example/targets").mock(
            return_value=Response(200, json={"targets": []})
        )
        config = HTTPSDConfig(url="http://sd.example/targets")

        assert await populate_targets([config], timedelta(seconds=0.2)) == []

    async def test_invalid_url_fails_to_start(self):
        with pytest.raises(DiscoveryError, match="invalid URL"):
            await populate_targets([HTTPSDConfig(url="sd.example")], timedelta(seconds=0.1))


class TestDiscoveryRegistry:
    """Tests for the discovery configuration registry."""

    def test_bundled_keys(self):
        assert default_discovery_registry().keys() == [
            "file_sd_configs",
            "http_sd_configs",
            "static_configs",
        ]

    def test_decode_all_in_key_order(self):
        configs = default_discovery_registry().decode_all(
            {
                "static_configs": [{"targets": ["a:1"]}],
                "http_sd_configs": [{"url": "http://x"}],
            }
        )
        assert [type(c) for c in configs] == [HTTPSDConfig, StaticConfig]

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="ec2_sd_configs"):
            default_discovery_registry().decode("ec2_sd_configs", [])

    def test_value_must_be_list(self):
        with pytest.raises(ConfigurationError, match="must be a list"):
            default_discovery_registry().decode("static_configs", {"targets": []})

    def test_invalid_entry(self):
        with pytest.raises(ConfigurationError, match="static_configs\\[0\\]"):
            default_discovery_registry().decode("static_configs", [{"targetz": []}])

    def test_encode(self):
        registry = default_discovery_registry()
        encoded = registry.encode([StaticConfig(targets=["a:1"]), FileSDConfig(files=["x"])])
        assert list(encoded) == ["file_sd_configs", "static_configs"]
        assert encoded["static_configs"] == [{"targets": ["a:1"], "labels": {}}]

    def test_backend_must_implement_new_discoverer(self):
        class IncompleteConfig(DiscoveryConfig):
            key = "incomplete_configs"

        with pytest.raises(TypeError):
            IncompleteConfig()

    def test_duplicate_key(self):
        with pytest.raises(RegistrationError):
            build_discovery_registry([StaticConfig, StaticConfig])
